"""Language profile registry.

The language table maps a language key to a :class:`LanguageProfile`.  It is
read once at startup, from the JSON file bundled with the package or from the
path given in ``CELLEXEC_LANG_CONFIG``, and never changes afterwards, so
lookups need no locking.

A broken or missing table must never stop the host from starting.  In that
case the registry only knows the built‑in default profile, which every
unknown key resolves to as well.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from pydantic import ValidationError

from .models import ExecutionMode, LanguageProfile

logger = logging.getLogger(__name__)

BUNDLED_TABLE = Path(__file__).parent / "data" / "languages.json"

DEFAULT_LANGUAGE = "javascript"

DEFAULT_PROFILE = LanguageProfile(
    key=DEFAULT_LANGUAGE,
    command_template="node {file}",
    temp_filename="sandbox_temp.js",
    extra_files_to_delete="",
    seed_code="",
    execution_mode=ExecutionMode.TERMINAL,
)

# Editor language ids and short names mapped onto table keys.
ALIASES: Dict[str, str] = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "python3": "python",
    "sh": "bash",
    "shell": "bash",
    "shellscript": "bash",
    "c++": "cpp",
    "javascriptreact": "react",
    "typescriptreact": "react",
}


class LanguageRegistry:
    """Read‑only lookup from language key to profile."""

    def __init__(self, profiles: Optional[Dict[str, LanguageProfile]] = None) -> None:
        self._profiles: Dict[str, LanguageProfile] = {}
        for key, profile in (profiles or {}).items():
            key = key.strip().lower()
            self._profiles[key] = profile if profile.key == key else profile.model_copy(update={"key": key})
        self.default = self._profiles.get(DEFAULT_LANGUAGE, DEFAULT_PROFILE)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "LanguageRegistry":
        """Build a registry from a JSON language table.

        Parameters
        ----------
        path: str or Path, optional
            Location of the table.  The bundled ``languages.json`` is used
            when omitted.

        Returns
        -------
        LanguageRegistry
            Holding every valid entry of the table.  Entries that fail
            validation are skipped; an unreadable table yields a registry
            with only the default profile.
        """
        table_path = Path(path) if path else BUNDLED_TABLE
        try:
            raw = json.loads(table_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unable to read language table %s (%s); using the default profile only", table_path, exc)
            return cls()
        if not isinstance(raw, dict):
            logger.warning("Language table %s is not a JSON object; using the default profile only", table_path)
            return cls()

        profiles: Dict[str, LanguageProfile] = {}
        for key, entry in raw.items():
            if not isinstance(entry, dict):
                logger.warning("Skipping language %r: entry is not an object", key)
                continue
            try:
                profiles[key] = LanguageProfile.model_validate({**entry, "key": key.strip().lower()})
            except ValidationError as exc:
                logger.warning("Skipping language %r: %s", key, exc)
        logger.info("Loaded %d language profiles from %s", len(profiles), table_path)
        return cls(profiles)

    def resolve(self, language: Optional[str]) -> LanguageProfile:
        """Return the profile for ``language``; never fails."""
        if not language:
            return self.default
        key = language.strip().lower()
        key = ALIASES.get(key, key)
        return self._profiles.get(key, self.default)

    def keys(self) -> List[str]:
        return list(self._profiles)

    def profiles(self) -> List[LanguageProfile]:
        return list(self._profiles.values())

    def __contains__(self, language: object) -> bool:
        if not isinstance(language, str):
            return False
        key = language.strip().lower()
        return ALIASES.get(key, key) in self._profiles

    def __iter__(self) -> Iterator[LanguageProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

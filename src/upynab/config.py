"""JSON-file configuration store.

The file holds the budget profiles (account mappings and categorization
settings per target budget), which profile is active, and the tunables of the
sync engine. A file written by the single-budget tool is read as one profile
named ``default``.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Optional

from dateutil.parser import isoparse

from upynab.domain.entities import AccountMapping, BudgetProfile, CategorizationSettings
from upynab.domain.errors import (
    ConfigurationError,
    NoActiveProfileError,
    ProfileNotFoundError,
    ValidationError,
    no_active_profile,
    profile_not_found,
)

logger = logging.getLogger(__name__)

LEGACY_PROFILE_NAME = "default"


def default_home() -> Path:
    """Directory holding the ledger, config and logs.

    Checks UPYNAB_HOME, then defaults to ~/.up-ynab-sync
    """
    home = os.environ.get("UPYNAB_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".up-ynab-sync"


def default_config_path() -> Path:
    path = os.environ.get("UPYNAB_CONFIG_PATH")
    if path:
        return Path(path).expanduser()
    return default_home() / "config.json"


@dataclass(frozen=True)
class SyncSettings:
    """Tunables of the sync engine and the HTTP clients."""

    batch_size: int = 10
    batch_pause_seconds: float = 1.0
    max_retries: int = 1
    retry_delay_seconds: float = 2.0
    backoff_multiplier: float = 1.0
    max_retry_delay_seconds: float = 60.0
    default_window_hours: int = 24
    max_custom_range_days: int = 90
    source_exponent: int = 2
    target_exponent: int = 3
    import_id_max_length: int = 36
    retention_days: int = 30
    page_size: int = 100
    request_timeout_seconds: float = 30.0

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValidationError("batch_size must be at least 1")
        if self.max_retries < 0:
            raise ValidationError("max_retries cannot be negative")
        if self.backoff_multiplier < 1.0:
            raise ValidationError("backoff_multiplier must be at least 1.0")
        if self.import_id_max_length < 1:
            raise ValidationError("import_id_max_length must be at least 1")
        if not 1 <= self.page_size <= 100:
            raise ValidationError("page_size must be between 1 and 100")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncSettings":
        """Build settings from a config block, ignoring unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown sync setting '%s'", key)
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Sync setting '{key}' must be a number, got {value!r}")
            values[key] = int(value) if known[key] in (int, "int") else float(value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _mapping_from_dict(data: dict[str, Any]) -> AccountMapping:
    # Mappings written by the single-budget tool use up_*/ynab_* keys.
    try:
        return AccountMapping(
            source_account_id=data.get("source_account_id") or data["up_account_id"],
            source_account_name=data.get("source_account_name") or data["up_account_name"],
            source_account_type=data.get("source_account_type") or data.get("up_account_type", ""),
            target_account_id=data.get("target_account_id") or data["ynab_account_id"],
            target_account_name=data.get("target_account_name") or data["ynab_account_name"],
            enabled=data.get("enabled", True),
        )
    except KeyError as e:
        raise ConfigurationError(f"Account mapping is missing field {e}") from e


def _mapping_to_dict(mapping: AccountMapping) -> dict[str, Any]:
    return asdict(mapping)


def _categorization_from_dict(data: Optional[dict[str, Any]]) -> CategorizationSettings:
    if not data:
        return CategorizationSettings()
    defaults = CategorizationSettings()
    return CategorizationSettings(
        enabled=data.get("enabled", defaults.enabled),
        auto_apply_during_sync=data.get("auto_apply_during_sync", defaults.auto_apply_during_sync),
        min_confidence_threshold=data.get(
            "min_confidence_threshold", defaults.min_confidence_threshold
        ),
        suggest_new_rules=data.get("suggest_new_rules", defaults.suggest_new_rules),
    )


def _profile_from_dict(name: str, data: dict[str, Any]) -> BudgetProfile:
    if not data.get("budget_id"):
        raise ConfigurationError(f"Profile '{name}' has no budget_id")
    created_at = data.get("created_at")
    return BudgetProfile(
        name=name,
        budget_id=data["budget_id"],
        budget_name=data.get("budget_name", ""),
        account_mappings=tuple(_mapping_from_dict(m) for m in data.get("account_mappings", [])),
        categorization=_categorization_from_dict(data.get("categorization")),
        created_at=isoparse(created_at) if created_at else None,
    )


def _profile_to_dict(profile: BudgetProfile) -> dict[str, Any]:
    return {
        "budget_id": profile.budget_id,
        "budget_name": profile.budget_name,
        "account_mappings": [_mapping_to_dict(m) for m in profile.account_mappings],
        "categorization": asdict(profile.categorization),
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }


class ConfigStore:
    """Reads and writes the configuration file.

    Every call re-reads the file, so a store can be held for the lifetime of a
    process while another invocation edits the configuration.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path).expanduser() if path is not None else default_config_path()

    def exists(self) -> bool:
        return self.path.exists()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {self.path} must contain a JSON object")
        return self._upgrade_legacy(data)

    def _upgrade_legacy(self, data: dict[str, Any]) -> dict[str, Any]:
        if "profiles" in data or "ynab_budget_id" not in data:
            return data
        logger.info("Reading single-budget configuration as profile '%s'", LEGACY_PROFILE_NAME)
        legacy = {
            "budget_id": data["ynab_budget_id"],
            "budget_name": data.get("ynab_budget_name", ""),
            "account_mappings": data.get("account_mappings", []),
            "categorization": data.get("categorization_settings"),
        }
        upgraded = {
            "active_profile": LEGACY_PROFILE_NAME,
            "profiles": {LEGACY_PROFILE_NAME: legacy},
            "legacy_budget_id": data["ynab_budget_id"],
        }
        if "sync" in data:
            upgraded["sync"] = data["sync"]
        return upgraded

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".config-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigurationError(f"Cannot write configuration file {self.path}: {e}") from e

    # Profiles
    def list_profiles(self) -> list[BudgetProfile]:
        """List all profiles, ordered by name."""
        profiles = self._read().get("profiles", {})
        return [_profile_from_dict(name, profiles[name]) for name in sorted(profiles)]

    def get_profile(self, name: str) -> BudgetProfile:
        """Get a profile by name.

        Raises:
            ProfileNotFoundError: If no profile has that name
        """
        profiles = self._read().get("profiles", {})
        if name not in profiles:
            raise ProfileNotFoundError(profile_not_found(name))
        return _profile_from_dict(name, profiles[name])

    def get_active_profile_name(self) -> Optional[str]:
        return self._read().get("active_profile")

    def get_active_profile(self) -> BudgetProfile:
        """Get the active profile.

        Raises:
            NoActiveProfileError: If no profile is active
        """
        name = self.get_active_profile_name()
        if not name:
            raise NoActiveProfileError(no_active_profile())
        return self.get_profile(name)

    def resolve_profile(self, name: Optional[str] = None) -> BudgetProfile:
        """Return the named profile, or the active one when no name is given."""
        if name:
            return self.get_profile(name)
        return self.get_active_profile()

    def save_profile(self, profile: BudgetProfile, make_active: bool = False) -> None:
        """Create or replace a profile.

        The first profile saved becomes active.
        """
        if not profile.name.strip():
            raise ValidationError("Profile name cannot be empty")
        data = self._read()
        profiles = data.setdefault("profiles", {})
        if profile.created_at is None:
            profile = replace(profile, created_at=datetime.now(UTC))
        profiles[profile.name] = _profile_to_dict(profile)
        if make_active or not data.get("active_profile"):
            data["active_profile"] = profile.name
        self._write(data)

    def delete_profile(self, name: str) -> None:
        data = self._read()
        profiles = data.get("profiles", {})
        if name not in profiles:
            raise ProfileNotFoundError(profile_not_found(name))
        del profiles[name]
        if data.get("active_profile") == name:
            data["active_profile"] = None
        self._write(data)

    def set_active_profile(self, name: str) -> None:
        data = self._read()
        if name not in data.get("profiles", {}):
            raise ProfileNotFoundError(profile_not_found(name))
        data["active_profile"] = name
        self._write(data)

    # Mappings and categorization
    def add_or_update_mapping(self, profile_name: str, mapping: AccountMapping) -> None:
        """Replace any mapping for the same source account, then append."""
        profile = self.get_profile(profile_name)
        kept = tuple(
            m for m in profile.account_mappings if m.source_account_id != mapping.source_account_id
        )
        self.save_profile(replace(profile, account_mappings=kept + (mapping,)))

    def remove_mapping(self, profile_name: str, source_account_id: str) -> bool:
        """Remove the mapping for a source account. Returns True if one was removed."""
        profile = self.get_profile(profile_name)
        kept = tuple(
            m for m in profile.account_mappings if m.source_account_id != source_account_id
        )
        if len(kept) == len(profile.account_mappings):
            return False
        self.save_profile(replace(profile, account_mappings=kept))
        return True

    def update_categorization(self, profile_name: str, settings: CategorizationSettings) -> None:
        if not 0.0 <= settings.min_confidence_threshold <= 1.0:
            raise ValidationError("min_confidence_threshold must be between 0 and 1")
        profile = self.get_profile(profile_name)
        self.save_profile(replace(profile, categorization=settings))

    # Sync tunables
    def sync_settings(self) -> SyncSettings:
        return SyncSettings.from_dict(self._read().get("sync", {}))

    def save_sync_settings(self, settings: SyncSettings) -> None:
        data = self._read()
        data["sync"] = settings.to_dict()
        self._write(data)

    def legacy_budget_id(self) -> str:
        """Budget id of a single-budget configuration, or "" when there is none."""
        return self._read().get("legacy_budget_id", "")

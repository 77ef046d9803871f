"""Connection and logging settings, from a YAML file or the environment."""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml

_FALSE_VALUES = ("false", "0", "no", "off", "")


@dataclass
class ApplianceConfig:
    """Where the appliance lives and how to log in to its web UI."""

    base_url: str
    username: str
    password: str
    allow_unverified_tls: bool = False  # Trust self-signed certificates
    timeout: int = 30

    @property
    def root_uri(self) -> str:
        """Base URL without trailing slash; also the key of the per-appliance lock."""
        return self.base_url.rstrip("/")

    def validate(self) -> None:
        """
        Reject settings that cannot produce a session.

        Raises:
            ValueError: Non-https URL, or an empty username or password
        """
        parsed = urlparse(self.base_url)
        if parsed.scheme != "https" or not parsed.netloc:
            raise ValueError(f"Appliance URL must be an https URL, got: {self.base_url!r}")

        missing = [
            name for name, value in (("username", self.username), ("password", self.password))
            if not value or not value.strip()
        ]
        if missing:
            raise ValueError(
                f"The appliance connection needs proper initialization parameters, "
                f"missing: {', '.join(missing)}"
            )


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "console"  # "console" or "json"
    file: Path | None = None

    @property
    def json_logs(self) -> bool:
        return self.format == "json"


@dataclass
class ProviderConfig:
    """
    Top-level settings document.

    YAML layout::

        appliance:
          base_url: https://fw.example.com
          username: root
          password: opnsense
          allow_unverified_tls: true
        logging:
          level: VERBOSE
          format: json
          file: logs/provider.log
    """

    appliance: ApplianceConfig | None = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> "ProviderConfig":
        """
        Parse the YAML layout above; both sections are optional.

        Raises:
            ValueError: Unparseable YAML or a document that is not a mapping
        """
        try:
            data = yaml.safe_load(config_path.read_text())
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(
                f"Invalid configuration file structure in {config_path}: "
                f"expected dictionary, got {type(data).__name__}"
            )

        appliance_section = data.get("appliance")
        logging_section = dict(data.get("logging") or {})
        if logging_section.get("file"):
            logging_section["file"] = Path(logging_section["file"])

        return cls(
            appliance=ApplianceConfig(**appliance_section) if appliance_section else None,
            logging=LoggingConfig(**logging_section),
        )

    def to_file(self, config_path: Path) -> None:
        """Write the settings back out in the layout :meth:`from_file` reads."""
        logging_section = {
            key: str(value) if isinstance(value, Path) else value
            for key, value in asdict(self.logging).items()
            if value is not None
        }
        document = {
            "appliance": asdict(self.appliance) if self.appliance else None,
            "logging": logging_section,
        }

        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(yaml.safe_dump(document, default_flow_style=False, sort_keys=False))

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        """
        Build settings from the environment.

        The appliance section is only present when OPNSENSE_URI is set, in
        which case OPNSENSE_USER_ID and OPNSENSE_USER_PASSWORD are required.
        OPNSENSE_ALLOW_UNVERIFIED_TLS and OPNSENSE_TIMEOUT are optional.
        LOG_LEVEL and LOG_FORMAT feed the logging section.

        Raises:
            ValueError: OPNSENSE_URI is set without both credentials
        """
        appliance = None
        uri = os.getenv("OPNSENSE_URI")
        if uri:
            username = os.environ.get("OPNSENSE_USER_ID", "")
            password = os.environ.get("OPNSENSE_USER_PASSWORD", "")

            unset = [
                name
                for name, value in (
                    ("OPNSENSE_USER_ID", username),
                    ("OPNSENSE_USER_PASSWORD", password),
                )
                if not value
            ]
            if unset:
                raise ValueError(
                    f"OPNSENSE_URI is set but required credentials are missing: "
                    f"{', '.join(unset)}."
                )

            allow_unverified = os.environ.get("OPNSENSE_ALLOW_UNVERIFIED_TLS", "false").lower()
            appliance = ApplianceConfig(
                base_url=uri,
                username=username,
                password=password,
                allow_unverified_tls=allow_unverified not in _FALSE_VALUES,
                timeout=int(os.environ.get("OPNSENSE_TIMEOUT", "30")),
            )

        return cls(
            appliance=appliance,
            logging=LoggingConfig(
                level=os.environ.get("LOG_LEVEL", "INFO"),
                format=os.environ.get("LOG_FORMAT", "console"),
            ),
        )


def load_config(config_file: Path | None = None) -> ProviderConfig:
    """
    Settings from ``config_file`` when given, otherwise from the environment.

    Raises:
        FileNotFoundError: ``config_file`` was given but does not exist
    """
    if config_file is None:
        return ProviderConfig.from_env()
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")
    return ProviderConfig.from_file(config_file)

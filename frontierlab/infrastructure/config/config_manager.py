"""
Configuration management system with environment-based configurations.
Provides centralized configuration loading and management.
"""

import os
import yaml
import json
from typing import Any, Dict, Optional
from pathlib import Path
from dataclasses import asdict, dataclass, field
from ...domain.exceptions import ConfigurationError, MissingConfigurationError, InvalidConfigurationError
from ...domain.interfaces import IConfigManager

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


@dataclass
class FrontierConfig:
    """Frontier construction settings."""
    n_points: int = 25
    es_confidence: float = 0.95
    default_method: str = "mean-var"


@dataclass
class SolverConfig:
    """Numerical solver settings."""
    qp_solver: str = "CLARABEL"
    lp_method: str = "highs"
    max_iterations: Optional[int] = 10000
    time_limit: Optional[float] = None
    feasibility_tol: float = 1e-6


@dataclass
class RandomSearchConfig:
    """Random portfolio search settings."""
    search_size: int = 2000
    max_batches: int = 200
    seed: Optional[int] = None


@dataclass
class ParallelConfig:
    """Parallel dispatch settings."""
    max_workers: Optional[int] = None
    use_processes: bool = False
    memory_limit_gb: float = 8.0
    timeout_seconds: Optional[float] = None


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    structured_file_path: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5
    console_output: bool = True


@dataclass
class ApplicationConfig:
    """Main application configuration."""
    environment: str = "development"
    debug: bool = False
    frontier: FrontierConfig = field(default_factory=FrontierConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    random_search: RandomSearchConfig = field(default_factory=RandomSearchConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Environment variable -> (section, key, converter)
_ENVIRONMENT_OVERRIDES = {
    "LOG_LEVEL": ("logging", "level", str),
    "FRONTIER_N_POINTS": ("frontier", "n_points", int),
    "FRONTIER_QP_SOLVER": ("solver", "qp_solver", str),
    "FRONTIER_MAX_WORKERS": ("parallel", "max_workers", int),
    "FRONTIER_SEED": ("random_search", "seed", int),
}


class ConfigManager(IConfigManager):
    """
    Configuration manager that loads and manages application configuration
    from multiple sources with environment-based overrides.
    """

    def __init__(self, config_dir: Optional[str] = None, environment: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory containing configuration files
            environment: Environment name; defaults to $ENVIRONMENT or 'development'
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._config: Dict[str, Any] = {}
        self._app_config: Optional[ApplicationConfig] = None
        self._environment = environment or os.getenv("ENVIRONMENT", "development")

        # Load configuration
        self._load_configuration()

    @property
    def environment(self) -> str:
        return self._environment

    def _load_configuration(self) -> None:
        """Load configuration from files and environment variables."""
        try:
            # Load base configuration
            base_config = self._load_config_file("base.yaml")

            # Load environment-specific configuration
            env_config = self._load_config_file(f"{self._environment}.yaml")

            # Merge configurations (environment overrides base)
            self._config = self._deep_merge(base_config, env_config)

            # Override with environment variables
            self._apply_environment_overrides()

            # Create application config object
            self._app_config = self._create_app_config()

        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load configuration: {str(e)}",
                error_code="CONFIG_LOAD_FAILED"
            ) from e

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        file_path = self.config_dir / filename

        if not file_path.exists():
            if filename.startswith("base."):
                # Base config is required
                raise MissingConfigurationError(
                    f"Base configuration file not found: {file_path}",
                    error_code="BASE_CONFIG_MISSING"
                )
            else:
                # Environment-specific config is optional
                return {}

        return self._read_file(file_path)

    def _read_file(self, file_path: Path) -> Dict[str, Any]:
        try:
            with open(file_path, 'r') as f:
                if file_path.suffix in ('.yaml', '.yml'):
                    return yaml.safe_load(f) or {}
                elif file_path.suffix == '.json':
                    return json.load(f) or {}
                else:
                    raise InvalidConfigurationError(
                        f"Unsupported configuration file format: {file_path.name}",
                        error_code="UNSUPPORTED_CONFIG_FORMAT"
                    )
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(
                f"Invalid YAML in configuration file {file_path.name}: {str(e)}",
                error_code="INVALID_YAML"
            ) from e
        except json.JSONDecodeError as e:
            raise InvalidConfigurationError(
                f"Invalid JSON in configuration file {file_path.name}: {str(e)}",
                error_code="INVALID_JSON"
            ) from e

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_environment_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        for variable, (section, key, convert) in _ENVIRONMENT_OVERRIDES.items():
            raw = os.getenv(variable)
            if not raw:
                continue
            try:
                self._config.setdefault(section, {})[key] = convert(raw)
            except ValueError as e:
                raise InvalidConfigurationError(
                    f"Invalid value for {variable}: {raw}",
                    error_code="INVALID_ENV_OVERRIDE",
                    context={'variable': variable, 'value': raw}
                ) from e

        if os.getenv("DEBUG"):
            self._config["debug"] = os.getenv("DEBUG").lower() in ("true", "1", "yes")

    def _create_app_config(self) -> ApplicationConfig:
        """Create typed application configuration from the merged mapping."""
        try:
            return ApplicationConfig(
                environment=self._environment,
                debug=self._config.get("debug", False),
                frontier=FrontierConfig(**self._config.get("frontier", {})),
                solver=SolverConfig(**self._config.get("solver", {})),
                random_search=RandomSearchConfig(**self._config.get("random_search", {})),
                parallel=ParallelConfig(**self._config.get("parallel", {})),
                logging=LoggingConfig(**self._config.get("logging", {}))
            )
        except TypeError as e:
            raise InvalidConfigurationError(
                f"Failed to create application configuration: {str(e)}",
                error_code="CONFIG_CREATION_FAILED"
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key using dot notation.

        Args:
            key: Configuration key (supports dot notation like 'solver.qp_solver')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value by key using dot notation.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        # Navigate to the parent dictionary
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

        # Recreate application config
        self._app_config = self._create_app_config()

    def load_from_file(self, file_path: str) -> None:
        """Merge an additional configuration file over the current settings."""
        path = Path(file_path)
        if not path.exists():
            raise MissingConfigurationError(
                f"Configuration file not found: {path}",
                error_code="CONFIG_FILE_MISSING"
            )
        self._config = self._deep_merge(self._config, self._read_file(path))
        self._app_config = self._create_app_config()

    def save_to_file(self, file_path: str) -> None:
        """Write the merged configuration as YAML."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)

    def get_app_config(self) -> ApplicationConfig:
        """Get the application configuration object."""
        if self._app_config is None:
            raise ConfigurationError(
                "Application configuration not initialized",
                error_code="CONFIG_NOT_INITIALIZED"
            )
        return self._app_config

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_configuration()

    def validate(self) -> None:
        """Validate configuration settings."""
        config = self.get_app_config()

        if config.frontier.n_points < 2:
            raise InvalidConfigurationError(
                "Frontier needs at least two points",
                error_code="INVALID_N_POINTS"
            )

        if not 0 < config.frontier.es_confidence < 1:
            raise InvalidConfigurationError(
                "ES confidence must lie in (0, 1)",
                error_code="INVALID_ES_CONFIDENCE"
            )

        if config.frontier.default_method not in ("mean-var", "mean-ES", "random"):
            raise InvalidConfigurationError(
                f"Unknown default frontier method: {config.frontier.default_method}",
                error_code="INVALID_METHOD"
            )

        if config.solver.max_iterations is not None and config.solver.max_iterations <= 0:
            raise InvalidConfigurationError(
                "Solver iteration cap must be positive",
                error_code="INVALID_MAX_ITERATIONS"
            )

        if config.solver.time_limit is not None and config.solver.time_limit <= 0:
            raise InvalidConfigurationError(
                "Solver time limit must be positive",
                error_code="INVALID_TIME_LIMIT"
            )

        if config.solver.feasibility_tol <= 0:
            raise InvalidConfigurationError(
                "Feasibility tolerance must be positive",
                error_code="INVALID_TOLERANCE"
            )

        if config.random_search.search_size < 1:
            raise InvalidConfigurationError(
                "Random search size must be at least 1",
                error_code="INVALID_SEARCH_SIZE"
            )

        if config.random_search.max_batches < 1:
            raise InvalidConfigurationError(
                "Random search needs at least one sampling batch",
                error_code="INVALID_MAX_BATCHES"
            )

        if config.parallel.max_workers is not None and config.parallel.max_workers < 1:
            raise InvalidConfigurationError(
                "Parallel max_workers must be at least 1",
                error_code="INVALID_MAX_WORKERS"
            )


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def initialize_config(config_dir: Optional[str] = None, environment: Optional[str] = None) -> ConfigManager:
    """Initialize global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_dir, environment)
    return _config_manager

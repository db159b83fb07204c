"""
Configuration management for the Task Orchestrator.

This module handles loading and managing configuration for the whole
orchestration core, including environment variables, API keys, and the
default limits used by phase nodes, tools, and the task-graph cache.
"""

import os
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()


class LogLevel(str, Enum):
    """Log levels supported by the system."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LLMConfig(BaseModel):
    """Configuration for the LLM used by every phase node."""

    api_key: str = Field(default="", description="Gemini API key")
    model: str = Field(default="gemini-2.5-flash", description="Model name to use")
    temperature: float = Field(default=1.0, description="Model temperature")
    max_tokens: int = Field(default=8192, description="Max tokens to generate")
    classification_max_tokens: int = Field(
        default=100, description="Max tokens for intent classification"
    )
    timeout_seconds: float = Field(default=60.0, description="Per-call timeout")
    max_retries: int = Field(default=3, description="Attempts for recoverable errors")

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, value: float) -> float:
        """Validate temperature is within the range Gemini accepts."""
        if not (0.0 <= value <= 2.0):
            raise ValueError(f"Temperature must be between 0.0 and 2.0, got {value}")
        return value

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Create an LLMConfig from environment variables."""
        return cls(
            api_key=os.getenv("GEMINI_API_KEY", ""),
            model=os.getenv("LLM_MODEL", "gemini-2.5-flash"),
            temperature=float(os.getenv("LLM_TEMPERATURE", "1.0")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "8192")),
            timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "3")),
        )


class APIConfig(BaseModel):
    """Configuration for external APIs and storage."""

    aws_region: str = Field(default="ap-south-1", description="AWS region")
    dynamodb_table_name: str = Field(
        default="task-orchestrator", description="DynamoDB table name"
    )
    dynamodb_endpoint: str | None = Field(
        default=None, description="DynamoDB endpoint URL (for local dev)"
    )
    firecrawl_api_key: str | None = Field(default=None, description="Firecrawl API key")
    mapbox_access_token: str | None = Field(
        default=None, description="Mapbox access token"
    )

    class ValidationError(Exception):
        """Exception raised for API configuration validation errors."""

        def __init__(
            self, missing_keys: list[str], optional_missing: list[str] | None = None
        ):
            self.missing_keys = missing_keys
            self.optional_missing = optional_missing or []
            message = f"Missing required settings: {', '.join(missing_keys)}"
            if optional_missing:
                message += f". Optional keys missing: {', '.join(optional_missing)}"
            super().__init__(message)

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Create an APIConfig from environment variables."""
        return cls(
            aws_region=os.getenv("AWS_REGION", "ap-south-1"),
            dynamodb_table_name=os.getenv("DYNAMODB_TABLE_NAME", "task-orchestrator"),
            dynamodb_endpoint=os.getenv("DYNAMODB_ENDPOINT"),
            firecrawl_api_key=os.getenv("FIRECRAWL_API_KEY"),
            mapbox_access_token=os.getenv("MAPBOX_ACCESS_TOKEN"),
        )

    def validate(self, raise_error: bool = False) -> bool:
        """
        Validate that required settings are present.

        Args:
            raise_error: If True, raise ValidationError instead of returning False

        Returns:
            True if all required settings are present, False otherwise

        Raises:
            ValidationError: If raise_error is True and validation fails
        """
        missing_keys = []
        optional_missing = []

        if not self.dynamodb_table_name:
            missing_keys.append("DYNAMODB_TABLE_NAME")

        # Tools degrade to error payloads without these
        if not self.firecrawl_api_key:
            optional_missing.append("FIRECRAWL_API_KEY")
        if not self.mapbox_access_token:
            optional_missing.append("MAPBOX_ACCESS_TOKEN")

        if optional_missing:
            logger.warning(
                f"Optional API keys missing: {', '.join(optional_missing)}. "
                f"Some tools will report errors."
            )

        if missing_keys:
            logger.error(f"Missing required settings: {', '.join(missing_keys)}")
            if raise_error:
                raise self.ValidationError(missing_keys, optional_missing)
            return False

        return True


class AgentConfig(BaseModel):
    """Limits applied by the state machine and its phase nodes."""

    max_iterations: int = Field(default=10, description="Node visits per plan step")
    timeout_seconds: float = Field(default=120.0, description="Per-turn timeout")
    default_search_radius: int = Field(default=5000, description="Meters")
    max_pharmacy_calls: int = Field(default=5, description="Pharmacies called per task")
    max_retries: int = Field(default=3, description="Validation refinement cap")
    batch_cap: int = Field(default=3, description="Steps run concurrently per batch")
    validation_char_budget: int = Field(
        default=50_000, description="Result size above which validation is skipped"
    )

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Create an AgentConfig from environment variables."""
        return cls(
            max_iterations=int(os.getenv("AGENT_MAX_ITERATIONS", "10")),
            timeout_seconds=float(os.getenv("AGENT_TIMEOUT_SECONDS", "120")),
            default_search_radius=int(os.getenv("DEFAULT_SEARCH_RADIUS", "5000")),
            max_pharmacy_calls=int(os.getenv("MAX_PHARMACY_CALLS", "5")),
            max_retries=int(os.getenv("AGENT_MAX_RETRIES", "3")),
            batch_cap=int(os.getenv("STEP_BATCH_CAP", "3")),
            validation_char_budget=int(os.getenv("VALIDATION_CHAR_BUDGET", "50000")),
        )


class ToolConfig(BaseModel):
    """Defaults for the built-in tools."""

    web_search_max_results: int = Field(default=10)
    web_search_timeout: float = Field(default=10.0, description="Seconds")
    geocoding_timeout: float = Field(default=5.0, description="Seconds")
    call_min_delay: float = Field(default=1.0, description="Seconds")
    call_max_delay: float = Field(default=3.0, description="Seconds")
    booking_confirmation_rate: float = Field(default=0.9)
    booking_min_delay: float = Field(default=0.5, description="Seconds")
    booking_max_delay: float = Field(default=1.5, description="Seconds")

    @classmethod
    def from_env(cls) -> "ToolConfig":
        """Create a ToolConfig from environment variables."""
        return cls(
            web_search_max_results=int(os.getenv("WEB_SEARCH_MAX_RESULTS", "10")),
            web_search_timeout=float(os.getenv("WEB_SEARCH_TIMEOUT", "10")),
            geocoding_timeout=float(os.getenv("GEOCODING_TIMEOUT", "5")),
            call_min_delay=float(os.getenv("CALL_MIN_DELAY", "1")),
            call_max_delay=float(os.getenv("CALL_MAX_DELAY", "3")),
            booking_confirmation_rate=float(
                os.getenv("BOOKING_CONFIRMATION_RATE", "0.9")
            ),
        )


class SystemConfig(BaseModel):
    """System-wide configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_file: str | None = Field(default=None, description="Optional log file path")
    environment: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )
    graph_ttl_seconds: int = Field(default=1800, description="Task-graph cache TTL")
    graph_sweep_interval_seconds: int = Field(
        default=300, description="Interval of the background cache sweep"
    )
    guest_token_ttl_seconds: int = Field(default=86400, description="Guest token TTL")

    @classmethod
    def from_env(cls) -> "SystemConfig":
        """Create a SystemConfig from environment variables."""
        return cls(
            log_level=LogLevel(os.getenv("LOG_LEVEL", "INFO").upper()),
            log_file=os.getenv("LOG_FILE"),
            environment=os.getenv("ENVIRONMENT", "development"),
            graph_ttl_seconds=int(os.getenv("GRAPH_TTL_SECONDS", "1800")),
            graph_sweep_interval_seconds=int(
                os.getenv("GRAPH_SWEEP_INTERVAL_SECONDS", "300")
            ),
            guest_token_ttl_seconds=int(os.getenv("GUEST_TOKEN_TTL_SECONDS", "86400")),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@dataclass
class OrchestratorConfig:
    """Main configuration class for the Task Orchestrator."""

    llm: LLMConfig = field(default_factory=LLMConfig.from_env)
    api: APIConfig = field(default_factory=APIConfig.from_env)
    agents: AgentConfig = field(default_factory=AgentConfig.from_env)
    tools: ToolConfig = field(default_factory=ToolConfig.from_env)
    system: SystemConfig = field(default_factory=SystemConfig.from_env)

    class ConfigurationError(Exception):
        """Exception raised for configuration validation errors."""

        pass

    def validate(self, raise_error: bool = False) -> bool:
        """
        Validate the entire configuration.

        Args:
            raise_error: If True, raise ConfigurationError instead of returning False

        Returns:
            True if configuration is valid, False otherwise

        Raises:
            ConfigurationError: If raise_error is True and validation fails
        """
        try:
            self.api.validate(raise_error=True)

            if not self.llm.api_key:
                raise ValueError("GEMINI_API_KEY is not set")
            if self.agents.batch_cap <= 0:
                raise ValueError("Step batch cap must be positive")
            if self.system.graph_ttl_seconds <= 0:
                raise ValueError("Graph TTL must be positive")

            return True

        except Exception as e:
            if not isinstance(e, self.api.ValidationError):
                logger.error(f"Configuration validation failed: {e!s}")

            if raise_error:
                raise self.ConfigurationError(
                    f"Configuration validation failed: {e!s}"
                ) from e

            return False


# Global configuration instance
config = OrchestratorConfig()


def initialize_config(
    custom_config_path: str | None = None,
    validate: bool = True,
    raise_on_error: bool = False,
) -> OrchestratorConfig:
    """
    Initialize and validate the configuration.

    Args:
        custom_config_path: Path to a custom .env file to load
        validate: Whether to validate the configuration
        raise_on_error: Whether to raise an exception on validation failure

    Returns:
        Initialized and validated configuration object

    Raises:
        OrchestratorConfig.ConfigurationError: If validation fails and
            raise_on_error is True
        FileNotFoundError: If custom_config_path is provided but does not exist
    """
    if custom_config_path:
        if not os.path.exists(custom_config_path):
            error_msg = f"Custom configuration file not found: {custom_config_path}"
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        logger.info(f"Loading custom configuration from {custom_config_path}")
        load_dotenv(custom_config_path, override=True)

        # Reload in place so modules holding a reference to `config` see updates
        config.llm = LLMConfig.from_env()
        config.api = APIConfig.from_env()
        config.agents = AgentConfig.from_env()
        config.tools = ToolConfig.from_env()
        config.system = SystemConfig.from_env()

    if validate:
        is_valid = config.validate(raise_error=raise_on_error)
        if not is_valid:
            logger.warning(
                "Configuration validation failed. The orchestrator may not function "
                "correctly. Please check your environment variables."
            )
            logger.info("Required environment variables: GEMINI_API_KEY")
            logger.info(
                "Optional environment variables: FIRECRAWL_API_KEY, "
                "MAPBOX_ACCESS_TOKEN, DYNAMODB_TABLE_NAME"
            )

    return config

"""
Configuration management.

Loads YAML configuration files from config/, substitutes environment
placeholders and validates everything with Pydantic models.
"""

from .settings import (
    AppConfig,
    SystemConfig,
    GateSettings,
    GateConfig,
    MarketConditionsGateConfig,
    RegimeGateConfig,
    QualityGateConfig,
    RiskGateConfig,
    SessionGateConfig,
    PhaseRule,
    SizingConfig,
    NormalizerConfig,
    LedgerConfig,
    PipelineConfig,
    SenderConfig,
    RoutingConfig,
)
from .loader import (
    ConfigLoader,
    get_config_loader,
    get_app_config,
    reload_config,
)

__all__ = [
    'AppConfig',
    'SystemConfig',
    'GateSettings',
    'GateConfig',
    'MarketConditionsGateConfig',
    'RegimeGateConfig',
    'QualityGateConfig',
    'RiskGateConfig',
    'SessionGateConfig',
    'PhaseRule',
    'SizingConfig',
    'NormalizerConfig',
    'LedgerConfig',
    'PipelineConfig',
    'SenderConfig',
    'RoutingConfig',
    'ConfigLoader',
    'get_config_loader',
    'get_app_config',
    'reload_config',
]

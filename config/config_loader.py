"""Load settings.yaml into typed dataclasses. Reports which providers have API keys."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    thesis: str
    antithesis: str
    synthesis: str
    governance: str = ""
    insights: str = ""
    verbosity: dict[str, str] = field(default_factory=dict)


@dataclass
class EngineConfig:
    max_active_debates: int = 10
    max_history: int = 100
    round_timeout_sec: float = 90.0
    coaching_interval_sec: float = 60.0
    governance_confidence_gate: int = 70
    generator: str | None = None


@dataclass
class QualityConfig:
    approval_score: int = 70
    min_confidence: int = 50
    min_evidence: int = 2
    max_min_confidence: int = 70
    max_min_evidence: int = 5


@dataclass
class ComplianceConfig:
    approval_score: int = 60


@dataclass
class GovernanceConfig:
    quality: QualityConfig = field(default_factory=QualityConfig)
    compliance: ComplianceConfig = field(default_factory=ComplianceConfig)


@dataclass
class CoachingConfig:
    min_confidence_offset: int = -20
    max_confidence_offset: int = 10
    accuracy_benchmark: float = 0.8
    latency_benchmark_ms: float = 30000.0


@dataclass
class OutputConfig:
    transcript_dir: Path = Path("./wip")
    store_dir: Path = Path("./data/debates")
    archive_retention_days: int = 30


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    engine: EngineConfig
    governance: GovernanceConfig
    coaching: CoachingConfig
    output: OutputConfig
    inbox: InboxConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def _load_engine(raw: dict) -> EngineConfig:
    generator = raw.get("generator")
    return EngineConfig(
        max_active_debates=int(raw.get("max_active_debates", 10)),
        max_history=int(raw.get("max_history", 100)),
        round_timeout_sec=float(raw.get("round_timeout_sec", 90)),
        coaching_interval_sec=float(raw.get("coaching_interval_sec", 60)),
        governance_confidence_gate=int(raw.get("governance_confidence_gate", 70)),
        generator=str(generator) if generator else None,
    )


def _load_governance(raw: dict) -> GovernanceConfig:
    quality_raw = raw.get("quality", {})
    compliance_raw = raw.get("compliance", {})
    return GovernanceConfig(
        quality=QualityConfig(
            approval_score=int(quality_raw.get("approval_score", 70)),
            min_confidence=int(quality_raw.get("min_confidence", 50)),
            min_evidence=int(quality_raw.get("min_evidence", 2)),
            max_min_confidence=int(quality_raw.get("max_min_confidence", 70)),
            max_min_evidence=int(quality_raw.get("max_min_evidence", 5)),
        ),
        compliance=ComplianceConfig(
            approval_score=int(compliance_raw.get("approval_score", 60)),
        ),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Missing API keys are logged, not raised. The engine runs on deterministic
    fallback content when no provider is available.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    engine = _load_engine(raw.get("engine", {}))
    governance = _load_governance(raw.get("governance", {}))

    coaching_raw = raw.get("coaching", {})
    coaching = CoachingConfig(
        min_confidence_offset=int(coaching_raw.get("min_confidence_offset", -20)),
        max_confidence_offset=int(coaching_raw.get("max_confidence_offset", 10)),
        accuracy_benchmark=float(coaching_raw.get("accuracy_benchmark", 0.8)),
        latency_benchmark_ms=float(coaching_raw.get("latency_benchmark_ms", 30000)),
    )

    output_raw = raw.get("output", {})
    output = OutputConfig(
        transcript_dir=Path(output_raw.get("transcript_dir", "./wip")),
        store_dir=Path(output_raw.get("store_dir", "./data/debates")),
        archive_retention_days=int(output_raw.get("archive_retention_days", 30)),
    )

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        thesis=prompts_raw["thesis"],
        antithesis=prompts_raw["antithesis"],
        synthesis=prompts_raw["synthesis"],
        governance=prompts_raw.get("governance", ""),
        insights=prompts_raw.get("insights", ""),
        verbosity={k: str(v) for k, v in prompts_raw.get("verbosity", {}).items()},
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw.get("models", {}).items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        engine=engine,
        governance=governance,
        coaching=coaching,
        output=output,
        inbox=inbox,
        models=models,
        prompts=prompts,
        available_providers=available_providers,
    )

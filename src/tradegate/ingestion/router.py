"""
Signal Router - the single canonical entry point for inbound events.

One routing table decides which engine version handles which sender.
Every binding is validated at construction, so a sender can never be
silently served by a version that does not exist.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Union
import logging

from tradegate.config.settings import RoutingConfig, SenderConfig
from tradegate.core.errors import UnknownSender
from tradegate.decision.engine import DecisionEngine
from tradegate.decision.models import Signal
from tradegate.ingestion.auth import RequestAuthenticator
from tradegate.ingestion.normalizer import SignalNormalizer
from tradegate.ingestion.payloads import parse_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteTarget:
    """Resolved binding for one sender."""
    sender: str
    engine_version: str
    config: SenderConfig


@dataclass(frozen=True)
class RoutedSignal:
    """Authenticated, normalized signal and the engine that must decide it."""
    signal: Signal
    engine: DecisionEngine
    route: RouteTarget
    auth_scheme: str


class SignalRouter:
    """
    Maps sender -> (payload kind, engine version).

    Example:
        router = SignalRouter(app_config.routing, {"v1": engine})
        routed = router.route("tradingview", body, headers)
        decision = routed.engine.decide(routed.signal, snapshot)
    """

    def __init__(
        self,
        routing: RoutingConfig,
        engines: Dict[str, DecisionEngine],
        authenticator: Optional[RequestAuthenticator] = None
    ):
        """
        Initialize the router.

        Args:
            routing: Sender bindings and the active engine version
            engines: Engine version -> engine instance

        Raises:
            ValueError: A binding names an engine version that is not provided
        """
        self.routing = routing
        self.engines = dict(engines)
        self.authenticator = authenticator or RequestAuthenticator()
        self.normalizers = {
            version: SignalNormalizer(engine.config, name=f"SignalNormalizer-{version}")
            for version, engine in self.engines.items()
        }

        missing = sorted({
            version
            for version, senders in self.traffic_table().items()
            if senders and version not in self.engines
        })
        if missing:
            raise ValueError(
                f"Routing references engine versions with no engine: {missing} "
                f"(available: {sorted(self.engines)})"
            )

        logger.info(f"SignalRouter ready: {self.traffic_table()}")

    def resolve(self, sender: str) -> RouteTarget:
        """Binding for a sender; raises UnknownSender if unbound or disabled."""
        config = self.routing.senders.get(sender)
        if config is None or not config.enabled:
            raise UnknownSender(sender)
        return RouteTarget(
            sender=sender,
            engine_version=config.engine_version or self.routing.active_version,
            config=config,
        )

    def engine_for(self, sender: str) -> DecisionEngine:
        return self.engines[self.resolve(sender).engine_version]

    def route(
        self,
        sender: str,
        body: Union[bytes, str],
        headers: Optional[Mapping[str, str]] = None,
        received_at: Optional[datetime] = None
    ) -> RoutedSignal:
        """
        Authenticate, parse and normalize one inbound event.

        Raises:
            UnknownSender: No binding for the sender
            AuthenticationFailure: Secret configured and nothing validated
            MalformedSignal: Payload missing or invalid field
        """
        received_at = received_at or datetime.now(timezone.utc)
        target = self.resolve(sender)

        scheme = self.authenticator.authenticate(sender, body, headers, target.config)
        payload = parse_payload(target.config.kind, body)
        signal = self.normalizers[target.engine_version].normalize(
            payload,
            received_at=received_at,
            source=sender,
            default_timeframe=target.config.default_timeframe,
        )

        logger.debug(
            f"Routed {sender} -> engine {target.engine_version} ({signal.ticker}, auth={scheme})",
            extra={'sender': sender, 'ticker': signal.ticker},
        )
        return RoutedSignal(
            signal=signal,
            engine=self.engines[target.engine_version],
            route=target,
            auth_scheme=scheme,
        )

    def traffic_table(self) -> Dict[str, List[str]]:
        """Engine version -> senders it serves."""
        table: Dict[str, List[str]] = {version: [] for version in self.engines}
        for sender, config in self.routing.senders.items():
            if config.enabled:
                version = config.engine_version or self.routing.active_version
                table.setdefault(version, []).append(sender)
        return table

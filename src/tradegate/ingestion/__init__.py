"""
Ingestion boundary: authenticate, parse and normalize sender events.
"""

from tradegate.ingestion.auth import RequestAuthenticator, sign_body, verify_signature
from tradegate.ingestion.normalizer import SignalNormalizer
from tradegate.ingestion.payloads import (
    SignalPayload,
    TradingViewPayload,
    UltimateOptionsPayload,
    parse_payload,
)
from tradegate.ingestion.router import RoutedSignal, RouteTarget, SignalRouter

__all__ = [
    'RequestAuthenticator',
    'sign_body',
    'verify_signature',
    'SignalNormalizer',
    'SignalPayload',
    'TradingViewPayload',
    'UltimateOptionsPayload',
    'parse_payload',
    'RoutedSignal',
    'RouteTarget',
    'SignalRouter',
]

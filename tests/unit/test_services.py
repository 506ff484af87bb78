from __future__ import annotations

import pytest

from karen_ai.config.settings import DEFAULT_SERVICE_URL
from karen_ai.domain.services import detect_website, resolve_service_url


@pytest.mark.parametrize(
    ("service", "expected"),
    [
        ("Amazon", "https://www.amazon.com"),
        ("amazon prime", "https://www.amazon.com"),
        ("PayPal", "https://www.paypal.com"),
        ("Paddy Power", "https://helpcenter.paddypower.com/app/home"),
        ("Some Local Shop", DEFAULT_SERVICE_URL),
        (None, DEFAULT_SERVICE_URL),
        ("", DEFAULT_SERVICE_URL),
    ],
)
def test_resolve_service_url(service: str | None, expected: str) -> None:
    assert resolve_service_url(service) == expected


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.amazon.co.uk/orders", "amazon"),
        ("https://helpcenter.paddypower.com/app/home", "paddypower"),
        ("https://www.ubereats.com", "uber"),
        ("https://example.org", "unknown"),
        (None, "unknown"),
    ],
)
def test_detect_website(url: str | None, expected: str) -> None:
    assert detect_website(url) == expected

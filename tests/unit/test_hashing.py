"""
Tests for canonical JSON and payload hashing.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.values import Money
from ledger_kernel.utils.hashing import canonicalize_json, hash_payload


class TestCanonicalJson:
    def test_key_order_does_not_matter(self):
        assert canonicalize_json({"b": 1, "a": 2}) == canonicalize_json({"a": 2, "b": 1})
        assert canonicalize_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_decimal_normalized(self):
        assert canonicalize_json(Decimal("1.50")) == canonicalize_json(Decimal("1.5"))

    def test_domain_types(self):
        payload = {
            "day": date(2024, 1, 15),
            "currency": Currency.USD,
            "amount": Money.from_cents(250),
            "perms": frozenset({"b", "a"}),
        }
        rendered = canonicalize_json(payload)
        assert '"day":"2024-01-15"' in rendered
        assert '"currency":"USD"' in rendered
        assert '"perms":["a","b"]' in rendered
        assert '"amount_minor_units":250' in rendered

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})


class TestHashPayload:
    def test_deterministic(self):
        assert hash_payload({"a": 1}) == hash_payload({"a": 1})
        assert len(hash_payload({"a": 1})) == 64

    def test_sensitive_to_values(self):
        assert hash_payload({"a": 1}) != hash_payload({"a": 2})

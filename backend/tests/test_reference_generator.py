"""
Tests for booking reference generation.
"""

import math

import pytest

from ticketing.services.reference_generator import (
    REFERENCE_SPACE,
    STRIDE,
    ReferenceGenerator,
    is_valid_reference,
)


def test_reference_format():
    generator = ReferenceGenerator("TG")
    for _ in range(1000):
        reference = generator.generate()
        assert is_valid_reference(reference)
        assert reference.startswith("TG")
        assert len(reference) == 10


def test_no_repeats_within_a_process():
    generator = ReferenceGenerator("TG")
    references = {generator.generate() for _ in range(100_000)}
    assert len(references) == 100_000


def test_stride_covers_the_whole_space():
    assert math.gcd(STRIDE, REFERENCE_SPACE) == 1


def test_default_prefix_from_settings():
    assert ReferenceGenerator().generate()[:2] == "TG"


@pytest.mark.parametrize("prefix", ["tg", "T", "TGX", "T1"])
def test_rejects_bad_prefix(prefix):
    with pytest.raises(ValueError):
        ReferenceGenerator(prefix)


@pytest.mark.parametrize(
    "reference,valid",
    [
        ("TG04718265", True),
        ("AB00000000", True),
        ("TG0471826", False),
        ("tg04718265", False),
        ("TG0471826X", False),
        ("TGX4718265", False),
    ],
)
def test_is_valid_reference(reference, valid):
    assert is_valid_reference(reference) is valid

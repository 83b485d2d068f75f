import pytest
from candycost.routes.utils import convert_units, are_units_compatible, normalize_unit


@pytest.mark.parametrize('quantity, from_unit, to_unit, expected', [
    (2, 'kg', 'g', 2000),
    (500, 'g', 'kg', 0.5),
    (1.5, 'l', 'ml', 1500),
    (250, 'ml', 'l', 0.25),
    (1, 'dúzia', 'unidade', 12),
    (24, 'un', 'dz', 2),
    (3, 'peça', 'unidade', 3),
    (7, 'g', 'g', 7),
])
def test_convertible_units(quantity, from_unit, to_unit, expected):
    assert convert_units(quantity, from_unit, to_unit) == pytest.approx(expected)


def test_units_are_case_insensitive():
    assert normalize_unit(' KG ') == 'kg'
    assert convert_units(1, 'KG', 'g') == 1000


def test_incompatible_units():
    assert convert_units(1, 'kg', 'ml') is None
    assert convert_units(1, 'xícara', 'g') is None
    assert not are_units_compatible('unidade', 'kg')
    assert are_units_compatible('l', 'ml')

from types import SimpleNamespace
import pytest
from candycost.models import db, FixedCost, WorkConfiguration
from candycost.routes.utils import (
    calculate_working_days, convert_legacy_configuration, calculate_fixed_cost_per_hour,
    monthly_value, calculate_monthly_fixed_costs, fixed_costs_by_category, get_work_configuration,
    monthly_work_hours
)


def schedule(days, hours_per_day=8):
    names = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
    flags = {f'work_{name}': name in days for name in names}
    return SimpleNamespace(hours_per_day=hours_per_day, **flags)


WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday']


def test_weekdays_in_common_year():
    calc = calculate_working_days(schedule(WEEKDAYS), year=2023)
    assert calc['annualWorkingDays'] == 260
    assert calc['annualWorkingHours'] == 2080


def test_weekdays_in_leap_year():
    calc = calculate_working_days(schedule(WEEKDAYS), year=2024)
    assert calc['annualWorkingDays'] == 262
    assert calc['monthlyWorkingHours'] == pytest.approx(262 * 8 / 12)


def test_every_day_of_leap_year():
    calc = calculate_working_days(schedule(WEEKDAYS + ['saturday', 'sunday'], hours_per_day=6), year=2024)
    assert calc['annualWorkingDays'] == 366
    assert calc['averageWorkingDaysPerMonth'] == pytest.approx(30.5)


@pytest.mark.parametrize('days_per_month, saturday, sunday', [
    (22, False, False),
    (26, True, False),
    (30, True, True),
])
def test_legacy_conversion(days_per_month, saturday, sunday):
    flags = convert_legacy_configuration(days_per_month, 8)
    assert flags['work_monday'] and flags['work_friday']
    assert flags['work_saturday'] is saturday
    assert flags['work_sunday'] is sunday
    assert flags['hours_per_day'] == 8


def test_recurrence_normalization():
    assert monthly_value(SimpleNamespace(value=300.0, recurrence='monthly')) == 300.0
    assert monthly_value(SimpleNamespace(value=300.0, recurrence='quarterly')) == 100.0
    assert monthly_value(SimpleNamespace(value=1200.0, recurrence='yearly')) == 100.0
    assert monthly_value(SimpleNamespace(value=1200.0, recurrence='weekly')) == 0.0


def test_only_active_costs_are_summed(ctx):
    db.session.add_all([
        FixedCost(name='Aluguel', category='Imóvel', value=1500.0, recurrence='monthly', is_active=True),
        FixedCost(name='IPTU', category='Imóvel', value=1200.0, recurrence='yearly', is_active=True),
        FixedCost(name='Seguro', category='Outros', value=900.0, recurrence='quarterly', is_active=False),
    ])
    db.session.commit()

    assert calculate_monthly_fixed_costs() == pytest.approx(1600.0)
    by_category = fixed_costs_by_category()
    assert by_category['Imóvel']['total'] == pytest.approx(1600.0)
    assert 'Outros' not in by_category


def test_default_configuration_when_missing(ctx):
    config = get_work_configuration()
    assert config.id is None
    assert monthly_work_hours(config) == 176


def test_zero_work_hours_gives_zero_cost_per_hour(ctx):
    db.session.add(FixedCost(name='Aluguel', category='Imóvel', value=1500.0, recurrence='monthly', is_active=True))
    db.session.add(WorkConfiguration(
        hours_per_day=8, days_per_month=22,
        work_monday=False, work_tuesday=False, work_wednesday=False, work_thursday=False,
        work_friday=False, work_saturday=False, work_sunday=False
    ))
    db.session.commit()

    assert calculate_fixed_cost_per_hour() == 0.0

from datetime import date
import pytest


def create_cost(client, **overrides):
    payload = {'name': 'Aluguel', 'category': 'Imóvel', 'value': 1760, 'recurrence': 'monthly'}
    payload.update(overrides)
    response = client.post('/api/fixed-costs', json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def weekdays_this_year():
    year = date.today().year
    start = date(year, 1, 1).toordinal()
    end = date(year, 12, 31).toordinal()
    return sum(1 for day in range(start, end + 1) if date.fromordinal(day).weekday() < 5)


def test_cost_per_hour_with_default_configuration(user_client):
    create_cost(user_client)

    body = user_client.get('/api/fixed-costs/cost-per-hour').get_json()

    assert body['monthlyWorkingHours'] == 176
    assert body['costPerHour'] == pytest.approx(10.0)


def test_monthly_total_and_categories(user_client):
    create_cost(user_client)
    create_cost(user_client, name='IPTU', value=1200, recurrence='yearly')
    create_cost(user_client, name='Contador', category='Serviços', value=450, recurrence='quarterly')

    assert user_client.get('/api/fixed-costs/monthly-total').get_json()['monthlyTotal'] == pytest.approx(2010)
    by_category = user_client.get('/api/fixed-costs/by-category').get_json()
    assert by_category['Imóvel']['total'] == pytest.approx(1860)
    assert len(by_category['Imóvel']['costs']) == 2
    assert by_category['Serviços']['total'] == pytest.approx(150)


def test_invalid_recurrence_is_rejected(user_client):
    response = user_client.post('/api/fixed-costs', json={
        'name': 'Gás', 'category': 'Utilidades', 'value': 100, 'recurrence': 'weekly'
    })
    assert response.status_code == 400


def test_toggle_excludes_cost(user_client):
    cost = create_cost(user_client)

    toggled = user_client.patch(f"/api/fixed-costs/{cost['id']}/toggle").get_json()

    assert toggled['isActive'] is False
    assert user_client.get('/api/fixed-costs/active').get_json() == []
    assert user_client.get('/api/fixed-costs/cost-per-hour').get_json()['costPerHour'] == 0


def test_fixed_cost_changes_are_tracked_for_every_product(api):
    cake = api.product(minutes=60)
    pie = api.product(name='Torta', minutes=30)

    cost = create_cost(api.client)
    api.client.put(f"/api/fixed-costs/{cost['id']}", json={'value': 3520})

    fixed_rows = api.history(itemType='fixed_cost')
    assert len(fixed_rows) == 1
    assert fixed_rows[0]['oldPrice'] == 1760 and fixed_rows[0]['newPrice'] == 3520
    cake_rows = api.history(productId=cake['id'])
    assert [row['newPrice'] for row in cake_rows] == pytest.approx([20.0, 10.0])
    assert api.history(productId=pie['id'])[0]['changeType'] == 'fixed_cost_update'


def test_delete_fixed_cost(user_client):
    cost = create_cost(user_client)
    assert user_client.delete(f"/api/fixed-costs/{cost['id']}").status_code == 200
    assert user_client.get(f"/api/fixed-costs/{cost['id']}").status_code == 404


def test_work_configuration_weekdays(user_client):
    create_cost(user_client)
    flags = {day: True for day in ['workMonday', 'workTuesday', 'workWednesday', 'workThursday', 'workFriday']}
    flags.update({'workSaturday': False, 'workSunday': False, 'hoursPerDay': 8})

    response = user_client.put('/api/fixed-costs/work-configuration', json=flags)

    assert response.status_code == 200
    expected_hours = weekdays_this_year() * 8 / 12
    assert response.get_json()['monthlyWorkingHours'] == pytest.approx(expected_hours)
    per_hour = user_client.get('/api/fixed-costs/cost-per-hour').get_json()['costPerHour']
    assert per_hour == pytest.approx(1760 / expected_hours)


def test_work_configuration_requires_a_working_day(user_client):
    flags = {day: False for day in [
        'workMonday', 'workTuesday', 'workWednesday', 'workThursday', 'workFriday', 'workSaturday', 'workSunday'
    ]}
    response = user_client.put('/api/fixed-costs/work-configuration', json=flags)
    assert response.status_code == 400


def test_work_configuration_rejects_zero_hours(user_client):
    response = user_client.put('/api/fixed-costs/work-configuration', json={'hoursPerDay': 0})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'As horas por dia devem ser maiores que zero'


def test_work_configuration_rejects_zero_days_per_month(user_client):
    response = user_client.put('/api/fixed-costs/work-configuration', json={'daysPerMonth': 0})

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Os dias trabalhados por mês devem ser maiores que zero'
    config = user_client.get('/api/fixed-costs/work-configuration').get_json()
    assert config['monthlyWorkingHours'] == pytest.approx(176)


def test_work_configuration_change_is_tracked(api):
    cake = api.product(minutes=60)
    create_cost(api.client)

    api.client.put('/api/fixed-costs/work-configuration', json={'hoursPerDay': 4})

    latest = api.history(productId=cake['id'])[0]
    assert latest['changeType'] == 'work_configuration_update'
    assert latest['newPrice'] == pytest.approx(20.0)

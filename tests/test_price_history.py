import pytest


@pytest.fixture
def cake(api):
    flour = api.ingredient()
    cake = api.product()
    api.recipe(cake['id'], [{'ingredientId': flour['id'], 'quantity': 2, 'unit': 'kg'}])
    return flour, cake


def test_recipe_save_records_product_cost(api, cake):
    _flour, product = cake
    entries = api.history(productId=product['id'])

    assert len(entries) == 1
    assert entries[0]['changeType'] == 'recipe_update'
    assert entries[0]['oldPrice'] == pytest.approx(0)
    assert entries[0]['newPrice'] == pytest.approx(5.0)


def test_price_change_writes_ingredient_row_first(api, cake):
    flour, product = cake

    api.client.put(f"/api/ingredients/{flour['id']}", json={'price': 15})

    latest, previous = api.history(limit=2)
    assert previous['itemType'] == 'ingredient'
    assert previous['ingredientId'] == flour['id']
    assert previous['oldPrice'] == 12.5 and previous['newPrice'] == 15
    assert latest['itemType'] == 'product'
    assert latest['productId'] == product['id']
    assert latest['changeType'] == 'price_update'
    assert latest['newPrice'] == pytest.approx(6.0)


def test_package_size_change_writes_unit_price_row_first(api, cake):
    flour, product = cake

    api.client.put(f"/api/ingredients/{flour['id']}", json={'quantity': 10})

    latest, previous = api.history(limit=2)
    assert previous['itemType'] == 'ingredient'
    assert previous['changeType'] == 'ingredient_update'
    assert previous['oldPrice'] == pytest.approx(2.5)
    assert previous['newPrice'] == pytest.approx(1.25)
    assert latest['productId'] == product['id']
    assert latest['newPrice'] == pytest.approx(2.5)


def test_change_below_epsilon_is_not_recorded(api, cake):
    flour, product = cake

    # 0.001 on a 5kg package moves the cake by 0.0004
    api.client.put(f"/api/ingredients/{flour['id']}", json={'price': 12.501})

    assert len(api.history(productId=product['id'])) == 1
    assert len(api.history(ingredientId=flour['id'])) == 1


def test_unchanged_update_records_nothing(api, cake):
    flour, _product = cake

    api.client.put(f"/api/ingredients/{flour['id']}", json={'price': 12.5, 'brand': 'Dona Benta'})

    assert len(api.history()) == 1


def test_filters_and_limit(api, cake):
    flour, _product = cake
    api.client.put(f"/api/ingredients/{flour['id']}", json={'price': 15})
    api.client.put(f"/api/ingredients/{flour['id']}", json={'price': 20})

    assert len(api.history(itemType='ingredient')) == 2
    assert len(api.history(itemType='product')) == 3
    assert len(api.history(limit=1)) == 1
    assert api.client.get('/api/price-history?itemType=batata').status_code == 400
    assert api.client.get('/api/price-history?limit=abc').status_code == 400


def test_history_survives_ingredient_deletion(api, cake):
    flour, _product = cake
    api.client.put(f"/api/ingredients/{flour['id']}", json={'price': 15})

    api.client.delete(f"/api/ingredients/{flour['id']}")

    ingredient_rows = api.history(itemType='ingredient')
    assert len(ingredient_rows) == 1
    assert ingredient_rows[0]['itemName'] == 'Farinha'
    assert ingredient_rows[0]['ingredientId'] is None

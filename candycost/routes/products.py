from flask import Blueprint, jsonify, current_app
from flask_babel import gettext as _
from werkzeug.exceptions import BadRequest
from ..models import db, Product, Ingredient, Recipe, PriceHistory, CircularRecipeError
from ..schemas import ProductCreate, ProductUpdate, RecipeSaveRequest
from .auth import login_required
from .utils import (
    log_audit, get_json_body, apply_changes, are_units_compatible, CostCache, calculate_product_cost,
    safe_product_cost, get_product_cost, dependent_product_ids, find_recipe_cycle, track_cost_changes
)

products_blueprint = Blueprint('products', __name__)


def _get_product(product_id):
    return db.get_or_404(Product, product_id, description=_("Produto não encontrado"))


def product_with_cost(product, cache, include_recipes=False):
    data = product.to_dict(include_recipes=include_recipes)
    cost = safe_product_cost(product, cache)
    data['cost'] = cost.to_dict() if cost else None
    return data


# ----------------------------
# Product Management
# ----------------------------
@products_blueprint.route('/api/products')
@login_required
def list_products():
    cache = CostCache()
    products = Product.query.order_by(Product.name).all()
    return jsonify([product_with_cost(p, cache) for p in products])


@products_blueprint.route('/api/products/<int:product_id>')
@login_required
def get_product(product_id):
    product = _get_product(product_id)
    return jsonify(product_with_cost(product, CostCache(), include_recipes=True))


@products_blueprint.route('/api/products/<int:product_id>/cost')
@login_required
def get_cost(product_id):
    return jsonify(get_product_cost(product_id).to_dict())


@products_blueprint.route('/api/products', methods=['POST'])
@login_required
def create_product():
    data = ProductCreate.model_validate(get_json_body())
    values = data.model_dump()
    if values['margin_percentage'] is None:
        values['margin_percentage'] = current_app.config['DEFAULT_MARGIN_PERCENTAGE']

    product = Product(**values)
    db.session.add(product)
    db.session.flush()
    log_audit("CREATE", "Product", product.id, f"Created product {product.name}")
    db.session.commit()
    return jsonify(product_with_cost(product, CostCache())), 201


@products_blueprint.route('/api/products/<int:product_id>', methods=['PUT'])
@login_required
def update_product(product_id):
    product = _get_product(product_id)
    changes = ProductUpdate.model_validate(get_json_body()).changes()

    if changes.get('is_also_ingredient') is False and product.used_in:
        raise BadRequest(_("Este produto é usado como ingrediente em outras receitas"))

    name = changes.get('name') or product.name
    affected = [product.id] + dependent_product_ids(product_id=product.id)
    with track_cost_changes(affected, 'product_update', _("Alteração no produto %(name)s", name=name)) as cost_changes:
        apply_changes(product, changes, nullable=('description',))

    log_audit("UPDATE", "Product", product.id, f"Updated product {name}")
    db.session.commit()

    data = product_with_cost(product, CostCache())
    data['costChanges'] = cost_changes
    return jsonify(data)


@products_blueprint.route('/api/products/<int:product_id>', methods=['DELETE'])
@login_required
def delete_product(product_id):
    product = _get_product(product_id)
    name = product.name
    affected = dependent_product_ids(product_id=product.id)

    with track_cost_changes(affected, 'recipe_update', _("Produto removido: %(name)s", name=name)):
        PriceHistory.query.filter_by(product_id=product.id).update({'product_id': None})
        db.session.delete(product)

    log_audit("DELETE", "Product", product_id, f"Deleted product {name}")
    db.session.commit()
    return '', 204


# ----------------------------
# Recipes
# ----------------------------
@products_blueprint.route('/api/products/<int:product_id>/recipes')
@login_required
def get_recipes(product_id):
    product = _get_product(product_id)
    return jsonify([line.to_dict(include_refs=True) for line in product.recipes])


@products_blueprint.route('/api/products/<int:product_id>/recipes', methods=['POST'])
@login_required
def save_recipes(product_id):
    """Replace every recipe line of a product, rejecting unknown components and cycles."""
    product = _get_product(product_id)
    payload = get_json_body(expect=(list, dict))
    if isinstance(payload, list):
        payload = {'recipes': payload}
    data = RecipeSaveRequest.model_validate(payload)

    component_ids = []
    for line in data.recipes:
        if line.ingredient_id is not None:
            ingredient = db.session.get(Ingredient, line.ingredient_id)
            if ingredient is None:
                raise BadRequest(_("Ingrediente %(id)s não encontrado", id=line.ingredient_id))
            if not are_units_compatible(line.unit, ingredient.unit):
                current_app.logger.warning(
                    "Recipe line for %s uses %s but %s is priced per %s",
                    product.name, line.unit, ingredient.name, ingredient.unit
                )
            continue
        component = db.session.get(Product, line.product_ingredient_id)
        if component is None:
            raise BadRequest(_("Produto %(id)s não encontrado", id=line.product_ingredient_id))
        if component.id != product.id and not component.is_also_ingredient:
            raise BadRequest(_("O produto %(name)s não pode ser usado como ingrediente", name=component.name))
        component_ids.append(component.id)

    cycle = find_recipe_cycle(product.id, component_ids)
    if cycle:
        raise CircularRecipeError(cycle)

    affected = [product.id] + dependent_product_ids(product_id=product.id)
    reason = _("Receita atualizada: %(name)s", name=product.name)
    with track_cost_changes(affected, 'recipe_update', reason) as cost_changes:
        product.recipes.clear()
        db.session.flush()
        for line in data.recipes:
            product.recipes.append(Recipe(
                ingredient_id=line.ingredient_id,
                product_ingredient_id=line.product_ingredient_id,
                quantity=line.quantity,
                unit=line.unit
            ))

    log_audit("UPDATE", "Recipe", product.id, f"Saved {len(data.recipes)} recipe line(s) for {product.name}")
    db.session.commit()
    current_app.logger.info("Recipe of product %s saved with %d line(s)", product.id, len(data.recipes))

    cost = calculate_product_cost(product, CostCache())
    return jsonify({
        'recipes': [line.to_dict(include_refs=True) for line in product.recipes],
        'cost': cost.to_dict(),
        'costChanges': cost_changes
    })

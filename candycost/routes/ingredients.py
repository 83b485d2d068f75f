from flask import Blueprint, jsonify, current_app
from flask_babel import gettext as _
from ..models import db, Ingredient, PriceHistory
from ..schemas import IngredientCreate, IngredientUpdate
from .auth import login_required
from .utils import (
    log_audit, get_json_body, apply_changes, normalize_unit, plan_unit_conversion,
    dependent_product_ids, track_cost_changes, record_price_history
)

ingredients_blueprint = Blueprint('ingredients', __name__)


def _get_ingredient(ingredient_id):
    return db.get_or_404(Ingredient, ingredient_id, description=_("Ingrediente não encontrado"))


# ----------------------------
# Ingredient Management
# ----------------------------
@ingredients_blueprint.route('/api/ingredients')
@login_required
def list_ingredients():
    ingredients = Ingredient.query.order_by(Ingredient.name).all()
    return jsonify([i.to_dict() for i in ingredients])


@ingredients_blueprint.route('/api/ingredients/<int:ingredient_id>')
@login_required
def get_ingredient(ingredient_id):
    return jsonify(_get_ingredient(ingredient_id).to_dict())


@ingredients_blueprint.route('/api/ingredients', methods=['POST'])
@login_required
def create_ingredient():
    data = IngredientCreate.model_validate(get_json_body())
    ingredient = Ingredient(**data.model_dump())
    db.session.add(ingredient)
    db.session.flush()
    log_audit("CREATE", "Ingredient", ingredient.id, f"Created ingredient {ingredient.name}")
    db.session.commit()
    return jsonify(ingredient.to_dict()), 201


@ingredients_blueprint.route('/api/ingredients/<int:ingredient_id>', methods=['PUT'])
@login_required
def update_ingredient(ingredient_id):
    ingredient = _get_ingredient(ingredient_id)
    changes = IngredientUpdate.model_validate(get_json_body()).changes()

    # Recipe quantities follow a unit change; an incompatible line aborts before any write
    conversions = []
    new_unit = changes.get('unit')
    unit_changed = bool(new_unit) and normalize_unit(new_unit) != normalize_unit(ingredient.unit)
    if unit_changed:
        conversions = plan_unit_conversion(ingredient, new_unit)

    old_price = ingredient.price
    new_price = changes.get('price')
    price_changed = new_price is not None and new_price != old_price
    # Same unit, new package size: the unit price moves even though the package price doesn't
    new_quantity = changes.get('quantity')
    repacked = (
        not price_changed and not unit_changed
        and new_quantity is not None and new_quantity != ingredient.quantity
    )
    change_type = 'price_update' if price_changed else 'ingredient_update'
    name = changes.get('name') or ingredient.name
    reason = _("Alteração no ingrediente %(name)s", name=name)

    affected = dependent_product_ids(ingredient_id=ingredient.id)
    with track_cost_changes(affected, change_type, reason) as cost_changes:
        if price_changed:
            record_price_history(
                'ingredient', name, old_price, new_price, 'price_update',
                change_reason=reason, ingredient_id=ingredient.id
            )
        elif repacked:
            record_price_history(
                'ingredient', name, old_price / ingredient.quantity, old_price / new_quantity,
                'ingredient_update', change_reason=reason, ingredient_id=ingredient.id
            )
        apply_changes(ingredient, changes, nullable=('brand',))
        for line, quantity in conversions:
            line.quantity = quantity
            line.unit = new_unit

    log_audit("UPDATE", "Ingredient", ingredient.id, f"Updated ingredient {name}")
    db.session.commit()
    current_app.logger.info("Ingredient %s updated, %d dependent product(s)", ingredient.id, len(affected))

    return jsonify({
        'ingredient': ingredient.to_dict(),
        'affectedProducts': affected,
        'costChanges': cost_changes,
        'convertedRecipes': len(conversions)
    })


@ingredients_blueprint.route('/api/ingredients/<int:ingredient_id>', methods=['DELETE'])
@login_required
def delete_ingredient(ingredient_id):
    ingredient = _get_ingredient(ingredient_id)
    name = ingredient.name
    affected = dependent_product_ids(ingredient_id=ingredient.id)

    with track_cost_changes(affected, 'ingredient_removed', _("Ingrediente removido: %(name)s", name=name)):
        PriceHistory.query.filter_by(ingredient_id=ingredient.id).update({'ingredient_id': None})
        db.session.delete(ingredient)

    log_audit("DELETE", "Ingredient", ingredient_id, f"Deleted ingredient {name}")
    db.session.commit()
    return '', 204

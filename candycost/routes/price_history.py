from flask import Blueprint, jsonify, request
from flask_babel import gettext as _
from werkzeug.exceptions import BadRequest
from ..models import PriceHistory
from .auth import login_required

price_history_blueprint = Blueprint('price_history', __name__)

ITEM_TYPES = ('ingredient', 'product', 'fixed_cost')


def int_arg(name, default=None):
    value = request.args.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise BadRequest(_("Parâmetro inválido: %(name)s", name=name))


@price_history_blueprint.route('/api/price-history')
@login_required
def list_price_history():
    query = PriceHistory.query

    ingredient_id = int_arg('ingredientId')
    if ingredient_id is not None:
        query = query.filter(PriceHistory.ingredient_id == ingredient_id)

    product_id = int_arg('productId')
    if product_id is not None:
        query = query.filter(PriceHistory.product_id == product_id)

    item_type = request.args.get('itemType')
    if item_type:
        if item_type not in ITEM_TYPES:
            raise BadRequest(_("Parâmetro inválido: %(name)s", name='itemType'))
        query = query.filter(PriceHistory.item_type == item_type)

    query = query.order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
    limit = int_arg('limit')
    if limit:
        query = query.limit(limit)

    return jsonify([entry.to_dict() for entry in query.all()])

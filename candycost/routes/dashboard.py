from datetime import datetime
import pandas as pd
from flask import Blueprint, jsonify, request
from flask_babel import gettext as _
from ..models import Ingredient, Product, PriceHistory
from .auth import login_required
from .price_history import int_arg

dashboard_blueprint = Blueprint('dashboard', __name__)

MONTH_ABBREVIATIONS = ['jan', 'fev', 'mar', 'abr', 'mai', 'jun', 'jul', 'ago', 'set', 'out', 'nov', 'dez']


def _average(values):
    return sum(values) / len(values) if values else 0.0


@dashboard_blueprint.route('/api/dashboard/stats')
@login_required
def stats():
    profit_type = request.args.get('type', 'product')
    category = request.args.get('category', 'all')

    products = Product.query.all()
    filtered = products if category == 'all' else [p for p in products if p.category == category]

    category_breakdown = []
    if profit_type == 'category':
        groups = {}
        for product in filtered:
            groups.setdefault(product.category, []).append(product.margin_percentage or 0)
        category_breakdown = [
            {'category': cat, 'avgMargin': _average(margins), 'productCount': len(margins)}
            for cat, margins in sorted(groups.items())
        ]
        # Average of category averages, so large categories don't dominate
        avg_profit_margin = _average([entry['avgMargin'] for entry in category_breakdown])
    else:
        avg_profit_margin = _average([p.margin_percentage or 0 for p in filtered])

    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    today_changes = PriceHistory.query.filter(PriceHistory.created_at >= today).count()

    return jsonify({
        'totalIngredients': Ingredient.query.count(),
        'totalProducts': len(filtered),
        'avgProfitMargin': round(avg_profit_margin, 1),
        'profitType': profit_type,
        'selectedCategory': category,
        'categoryBreakdown': category_breakdown,
        'availableCategories': sorted({p.category for p in products}),
        'todayChanges': today_changes,
    })


@dashboard_blueprint.route('/api/dashboard/recent-updates')
@login_required
def recent_updates():
    ingredient_names = {i.id: i.name for i in Ingredient.query.all()}
    product_names = {p.id: p.name for p in Product.query.all()}

    newest_first = (PriceHistory.created_at.desc(), PriceHistory.id.desc())
    ingredient_updates = PriceHistory.query.filter(PriceHistory.ingredient_id.isnot(None)) \
        .order_by(*newest_first).limit(3).all()
    product_updates = PriceHistory.query.filter(PriceHistory.product_id.isnot(None)) \
        .order_by(*newest_first).limit(3).all()

    def enrich(entry, names, fallback, key):
        data = entry.to_dict()
        data['name'] = names.get(getattr(entry, key), fallback)
        return data

    response = jsonify({
        'ingredientUpdates': [
            enrich(e, ingredient_names, _("Ingrediente desconhecido"), 'ingredient_id') for e in ingredient_updates
        ],
        'productUpdates': [
            enrich(e, product_names, _("Produto desconhecido"), 'product_id') for e in product_updates
        ],
        'timestamp': datetime.utcnow().isoformat(),
    })
    response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate, private'
    return response


@dashboard_blueprint.route('/api/dashboard/cost-evolution')
@login_required
def cost_evolution():
    """Average recorded product cost per month, for the last `months` months with changes."""
    product_arg = request.args.get('productId')
    months = int_arg('months', 6)

    query = PriceHistory.query.filter(PriceHistory.product_id.isnot(None))
    if product_arg and product_arg != 'general':
        query = query.filter(PriceHistory.product_id == int_arg('productId'))
    history = query.all()
    if not history:
        return jsonify([])

    df = pd.DataFrame(
        [{'created_at': h.created_at, 'new_price': h.new_price} for h in history]
    )
    df['period'] = pd.to_datetime(df['created_at']).dt.to_period('M')
    monthly = df.groupby('period')['new_price'].agg(['mean', 'count']).sort_index()
    if months > 0:
        monthly = monthly.tail(months)

    evolution = [
        {
            'month': MONTH_ABBREVIATIONS[period.month - 1],
            'period': str(period),
            'cost': float(row['mean']),
            'changes': int(row['count']),
        }
        for period, row in monthly.iterrows()
    ]
    return jsonify(evolution)

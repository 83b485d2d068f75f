import io
from datetime import datetime
import pandas as pd
from flask import Blueprint, jsonify, request, send_file, current_app
from flask_babel import gettext as _
from sqlalchemy import func
from werkzeug.exceptions import BadRequest
from ..models import db, Ingredient, Product, Recipe, FixedCost, PriceHistory
from .auth import login_required, current_user
from .utils import log_audit, CostCache, safe_product_cost, monthly_value, get_work_configuration

reports_blueprint = Blueprint('reports', __name__)

COMPLEX_RECIPE_LINES = 5


def profitability_rows(cache):
    rows = []
    for product in Product.query.order_by(Product.name).all():
        cost = safe_product_cost(product, cache)
        if cost is None:
            continue
        price = cost.sale_price if cost.sale_price > 0 else cost.suggested_price
        profit_margin = (price - cost.total_cost) / price * 100 if price > 0 else 0.0
        rows.append({
            'product': product,
            'cost': cost,
            'price': price,
            'profitMargin': profit_margin,
        })
    rows.sort(key=lambda row: row['profitMargin'], reverse=True)
    return rows


def build_reports():
    """Profitability, ingredient impact, category spread, complex recipes and cost alerts."""
    cache = CostCache()
    profitability = profitability_rows(cache)

    usage = dict(
        db.session.query(Recipe.ingredient_id, func.count(Recipe.id))
        .filter(Recipe.ingredient_id.isnot(None))
        .group_by(Recipe.ingredient_id)
        .all()
    )

    critical_ingredients = []
    for ingredient in Ingredient.query.all():
        usage_count = usage.get(ingredient.id, 0)
        if usage_count:
            critical_ingredients.append({
                'ingredient': ingredient.to_dict(),
                'usageCount': usage_count,
                'totalImpact': usage_count * ingredient.unit_price,
            })
    critical_ingredients.sort(key=lambda item: item['totalImpact'], reverse=True)

    categories = {}
    for row in profitability:
        entry = categories.setdefault(row['product'].category, {'count': 0, 'totalCost': 0.0})
        entry['count'] += 1
        entry['totalCost'] += row['cost'].total_cost
    category_distribution = [
        {'category': cat, 'count': data['count'], 'avgCost': data['totalCost'] / data['count']}
        for cat, data in sorted(categories.items())
    ]

    complex_recipes = []
    for product in Product.query.order_by(Product.name).all():
        has_sub_products = any(line.product_ingredient_id is not None for line in product.recipes)
        if has_sub_products or len(product.recipes) > COMPLEX_RECIPE_LINES:
            complex_recipes.append({
                'product': product.to_dict(),
                'hasProductIngredients': has_sub_products,
                'ingredientCount': len(product.recipes),
            })

    threshold = get_work_configuration().high_cost_alert_threshold
    high_cost_alerts = [
        {'product': row['product'].to_dict(), 'totalCost': row['cost'].total_cost, 'threshold': threshold}
        for row in profitability if row['cost'].total_cost > threshold
    ]

    return {
        'profitabilityAnalysis': [
            {
                'product': row['product'].to_dict(),
                'cost': row['cost'].to_dict(),
                'profitMargin': row['profitMargin'],
                'marginReal': row['cost'].margin_real,
                'salePricePerUnit': row['cost'].sale_price_per_unit,
                'costPerYieldUnit': row['cost'].cost_per_yield_unit,
            }
            for row in profitability
        ],
        'criticalIngredients': critical_ingredients,
        'categoryDistribution': category_distribution,
        'complexRecipes': complex_recipes,
        'highCostAlerts': high_cost_alerts,
    }


@reports_blueprint.route('/api/reports')
@login_required
def reports():
    return jsonify(build_reports())


# ----------------------------
# Export
# ----------------------------
def export_frame(dataset):
    if dataset == 'ingredients':
        return pd.DataFrame([i.to_dict() for i in Ingredient.query.order_by(Ingredient.name).all()])
    if dataset == 'products':
        cache = CostCache()
        rows = []
        for product in Product.query.order_by(Product.name).all():
            row = product.to_dict()
            cost = safe_product_cost(product, cache)
            row.update({
                'totalCost': cost.total_cost if cost else None,
                'suggestedPrice': cost.suggested_price if cost else None,
            })
            rows.append(row)
        return pd.DataFrame(rows)
    if dataset == 'fixed-costs':
        rows = []
        for cost in FixedCost.query.order_by(FixedCost.name).all():
            row = cost.to_dict()
            row['monthlyValue'] = monthly_value(cost)
            rows.append(row)
        return pd.DataFrame(rows)
    if dataset == 'price-history':
        history = PriceHistory.query.order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc()).all()
        return pd.DataFrame([h.to_dict() for h in history])
    if dataset == 'profitability':
        return pd.DataFrame([
            {
                'product': row['product'].name,
                'category': row['product'].category,
                'totalCost': row['cost'].total_cost,
                'price': row['price'],
                'profitMargin': row['profitMargin'],
            }
            for row in profitability_rows(CostCache())
        ])
    raise BadRequest(_("Conjunto de dados desconhecido: %(dataset)s", dataset=dataset))


@reports_blueprint.route('/api/reports/export')
@login_required
def export():
    dataset = request.args.get('dataset', 'products')
    export_format = request.args.get('format', 'csv')
    if export_format not in ('csv', 'json'):
        raise BadRequest(_("Formato de exportação inválido"))

    df = export_frame(dataset)
    mem = io.BytesIO()
    if export_format == 'csv':
        # BOM so spreadsheet tools detect UTF-8
        df.to_csv(mem, index=False, encoding='utf-8-sig')
        mimetype = 'text/csv'
    else:
        mem.write(df.to_json(orient='records', force_ascii=False, date_format='iso').encode('utf-8'))
        mimetype = 'application/json'
    mem.seek(0)

    user = current_user()
    log_audit("EXPORT", "Report", user.id, f"Exported {dataset} as {export_format}")
    db.session.commit()
    current_app.logger.info("Exported %d %s row(s) as %s", len(df), dataset, export_format)

    filename = f"candycost_{dataset}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{export_format}"
    return send_file(mem, as_attachment=True, download_name=filename, mimetype=mimetype)

import calendar
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from flask import request, current_app
from flask_babel import gettext as _
from werkzeug.exceptions import BadRequest
from ..models import (
    db, Product, Recipe, FixedCost, WorkConfiguration, PriceHistory, AuditLog,
    CircularRecipeError, UnitConversionError, WEEKDAY_FIELDS
)

logger = logging.getLogger(__name__)

# Smallest cost movement that is worth a price history entry
COST_CHANGE_EPSILON = 0.01

DEFAULT_HOURS_PER_DAY = 8.0
DEFAULT_DAYS_PER_MONTH = 22.0

RECURRENCE_DIVISORS = {
    'monthly': 1,
    'quarterly': 3,
    'yearly': 12,
}

_COUNTABLE = {'un': 1.0, 'unidade': 1.0, 'peça': 1.0, 'dúzia': 12.0, 'duzia': 12.0, 'dz': 12.0}

# Conversion factors into a base unit per dimension
UNIT_DIMENSIONS = {
    'mass': {'kg': 1000.0, 'g': 1.0},
    'volume': {'l': 1000.0, 'ml': 1.0},
    'count': _COUNTABLE,
}


def log_audit(action, target_type, target_id=None, details=None):
    try:
        log = AuditLog(
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=details
        )
        db.session.add(log)
    except Exception as e:
        logger.warning("Failed to log audit %s/%s: %s", action, target_type, e)


def get_json_body(expect=dict):
    """Return the request's JSON body, aborting with 400 when it is missing or of the wrong shape."""
    data = request.get_json(silent=True)
    if not isinstance(data, expect):
        raise BadRequest(_("Dados inválidos"))
    return data


# ----------------------------
# Units
# ----------------------------
def normalize_unit(unit):
    return (unit or '').strip().lower()


def _unit_dimension(unit):
    for dimension, factors in UNIT_DIMENSIONS.items():
        if unit in factors:
            return dimension, factors[unit]
    return None, None


def convert_units(quantity, from_unit, to_unit):
    """
    Convert a quantity between two units of the same dimension.
    Returns None when the units cannot be converted into each other.
    """
    from_unit = normalize_unit(from_unit)
    to_unit = normalize_unit(to_unit)
    if from_unit == to_unit:
        return quantity

    from_dim, from_factor = _unit_dimension(from_unit)
    to_dim, to_factor = _unit_dimension(to_unit)
    if from_dim is None or from_dim != to_dim:
        return None
    return quantity * from_factor / to_factor


def are_units_compatible(unit_a, unit_b):
    return convert_units(1.0, unit_a, unit_b) is not None


# ----------------------------
# Fixed costs and working hours
# ----------------------------
def monthly_value(fixed_cost):
    """Normalize a fixed cost to its monthly share. Unknown recurrences contribute nothing."""
    divisor = RECURRENCE_DIVISORS.get(fixed_cost.recurrence)
    if not divisor:
        return 0.0
    return fixed_cost.value / divisor


def calculate_monthly_fixed_costs():
    active_costs = FixedCost.query.filter_by(is_active=True).all()
    return sum(monthly_value(cost) for cost in active_costs)


def fixed_costs_by_category():
    categorized = {}
    for cost in FixedCost.query.filter_by(is_active=True).order_by(FixedCost.name).all():
        entry = categorized.setdefault(cost.category, {'total': 0.0, 'costs': []})
        entry['total'] += monthly_value(cost)
        entry['costs'].append(cost.to_dict())
    return categorized


def is_leap_year(year):
    return calendar.isleap(year)


def calculate_working_days(config, year=None):
    """
    Count the worked days of a calendar year from a weekday schedule.

    Args:
        config: object exposing the work_<weekday> flags and hours_per_day
        year: calendar year, defaults to the current one (leap years count 366 days)

    Returns:
        dict with annual days/hours, monthly hours and the average worked days per month
    """
    year = year or date.today().year
    worked_weekdays = {index for index, field in enumerate(WEEKDAY_FIELDS) if getattr(config, field)}
    days_in_year = 366 if is_leap_year(year) else 365

    annual_days = 0
    start = date(year, 1, 1).toordinal()
    for offset in range(days_in_year):
        if date.fromordinal(start + offset).weekday() in worked_weekdays:
            annual_days += 1

    hours_per_day = config.hours_per_day or 0
    annual_hours = annual_days * hours_per_day
    return {
        'annualWorkingDays': annual_days,
        'annualWorkingHours': annual_hours,
        'monthlyWorkingHours': annual_hours / 12,
        'averageWorkingDaysPerMonth': annual_days / 12,
    }


def convert_legacy_configuration(days_per_month, hours_per_day):
    """Map a legacy days-per-month figure onto weekday flags (Mon-Fri always worked)."""
    days_per_week = round((days_per_month * 12) / 52.14)
    flags = {field: True for field in WEEKDAY_FIELDS[:5]}
    flags['work_saturday'] = days_per_week > 5
    flags['work_sunday'] = days_per_week > 6
    flags['hours_per_day'] = hours_per_day
    return flags


def has_working_day(flags):
    return any(flags.get(field) for field in WEEKDAY_FIELDS)


def default_work_configuration():
    """Transient configuration used when none is stored (8h/day, 22 days/month)."""
    return WorkConfiguration(
        hours_per_day=DEFAULT_HOURS_PER_DAY,
        days_per_month=DEFAULT_DAYS_PER_MONTH,
        hourly_rate=25.0,
        high_cost_alert_threshold=50.0,
        currency_symbol=current_app.config.get('CURRENCY_SYMBOL', 'R$'),
    )


def get_work_configuration(create=False):
    config = WorkConfiguration.query.order_by(WorkConfiguration.id).first()
    if config is None:
        config = default_work_configuration()
        if create:
            db.session.add(config)
            refresh_working_hours(config)
    return config


def refresh_working_hours(config):
    """Store the derived annual/monthly figures on a configuration row."""
    if config.uses_weekdays:
        calc = calculate_working_days(config)
        config.annual_working_days = calc['annualWorkingDays']
        config.annual_working_hours = calc['annualWorkingHours']
        config.monthly_working_hours = calc['monthlyWorkingHours']
    else:
        monthly_hours = (config.days_per_month or 0) * (config.hours_per_day or 0)
        config.annual_working_days = int(round((config.days_per_month or 0) * 12))
        config.annual_working_hours = monthly_hours * 12
        config.monthly_working_hours = monthly_hours
    return config


def monthly_work_hours(config):
    if config.uses_weekdays:
        return calculate_working_days(config)['monthlyWorkingHours']
    return (config.days_per_month or 0) * (config.hours_per_day or 0)


def calculate_fixed_cost_per_hour(config=None):
    """Monthly active fixed costs spread over the configured monthly work hours. Zero hours yields 0."""
    config = config or get_work_configuration()
    hours = monthly_work_hours(config)
    if hours <= 0:
        logger.warning("Work configuration has no working hours, fixed cost per hour set to 0")
        return 0.0
    return calculate_monthly_fixed_costs() / hours


# ----------------------------
# Product cost
# ----------------------------
@dataclass
class ProductCost:
    product_id: int
    ingredients_cost: float
    fixed_cost_per_product: float
    total_cost: float
    suggested_price: float
    margin: float
    margin_percentage: float
    cost_per_yield_unit: float
    sale_price_per_unit: float
    margin_real: float
    yield_quantity: float
    yield_unit: str
    sale_price: float

    def to_dict(self):
        return {
            'productId': self.product_id,
            'ingredientsCost': self.ingredients_cost,
            'fixedCostPerProduct': self.fixed_cost_per_product,
            'fixedCostPerUnit': self.fixed_cost_per_product,
            'totalCost': self.total_cost,
            'suggestedPrice': self.suggested_price,
            'margin': self.margin,
            'marginPercentage': self.margin_percentage,
            'costPerYieldUnit': self.cost_per_yield_unit,
            'salePricePerUnit': self.sale_price_per_unit,
            'marginReal': self.margin_real,
            'yield': self.yield_quantity,
            'yieldUnit': self.yield_unit,
            'salePrice': self.sale_price,
        }


class CostCache:
    """Memo of product costs for the lifetime of one request."""

    def __init__(self):
        self.costs = {}
        self._fixed_cost_per_hour = None

    @property
    def fixed_cost_per_hour(self):
        if self._fixed_cost_per_hour is None:
            self._fixed_cost_per_hour = calculate_fixed_cost_per_hour()
        return self._fixed_cost_per_hour


def calculate_product_cost(product, cache=None, _path=None):
    """
    Calculates the production cost and suggested price of a product.
    Sub-products are costed recursively; a product met again on the current
    path raises CircularRecipeError instead of recursing forever.
    """
    cache = cache if cache is not None else CostCache()
    if product.id in cache.costs:
        return cache.costs[product.id]

    path = _path or []
    if product.id in [p.id for p in path]:
        names = [p.name for p in path[[p.id for p in path].index(product.id):]] + [product.name]
        raise CircularRecipeError(names)
    path = path + [product]

    ingredients_cost = 0.0
    for line in product.recipes:
        if line.ingredient is not None:
            ingredients_cost += line.ingredient.unit_price * line.quantity
        elif line.product_ingredient is not None:
            sub_cost = calculate_product_cost(line.product_ingredient, cache, path)
            ingredients_cost += sub_cost.total_cost * line.quantity

    fixed_cost_per_product = cache.fixed_cost_per_hour * ((product.preparation_time_minutes or 0) / 60.0)
    total_cost = ingredients_cost + fixed_cost_per_product
    margin_percentage = product.margin_percentage if product.margin_percentage is not None else 0.0
    suggested_price = total_cost * (1 + margin_percentage / 100.0)

    yield_quantity = product.yield_quantity or 0
    cost_per_yield_unit = total_cost / yield_quantity if yield_quantity > 0 else 0.0
    sale_price = product.sale_price or 0.0
    sale_price_per_unit = sale_price / yield_quantity if yield_quantity > 0 else 0.0

    cost = ProductCost(
        product_id=product.id,
        ingredients_cost=ingredients_cost,
        fixed_cost_per_product=fixed_cost_per_product,
        total_cost=total_cost,
        suggested_price=suggested_price,
        margin=suggested_price - total_cost,
        margin_percentage=margin_percentage,
        cost_per_yield_unit=cost_per_yield_unit,
        sale_price_per_unit=sale_price_per_unit,
        margin_real=sale_price_per_unit - cost_per_yield_unit,
        yield_quantity=yield_quantity,
        yield_unit=product.yield_unit,
        sale_price=sale_price,
    )
    cache.costs[product.id] = cost
    return cost


def get_product_cost(product_id, cache=None):
    product = db.get_or_404(Product, product_id, description=_("Produto não encontrado"))
    return calculate_product_cost(product, cache)


def safe_product_cost(product, cache=None):
    """Cost of a product, or None when its recipe graph is circular."""
    try:
        return calculate_product_cost(product, cache)
    except CircularRecipeError as e:
        logger.warning("Circular recipe for product %s: %s", product.id, e)
        return None


# ----------------------------
# Recipe graph
# ----------------------------
def _recipe_maps():
    """Linear scan of all recipe lines into reverse dependency maps."""
    by_ingredient = {}
    by_component = {}
    components_of = {}
    for line in Recipe.query.all():
        if line.ingredient_id is not None:
            by_ingredient.setdefault(line.ingredient_id, set()).add(line.product_id)
        if line.product_ingredient_id is not None:
            by_component.setdefault(line.product_ingredient_id, set()).add(line.product_id)
            components_of.setdefault(line.product_id, set()).add(line.product_ingredient_id)
    return by_ingredient, by_component, components_of


def dependent_product_ids(ingredient_id=None, product_id=None):
    """
    Products whose cost depends on the given ingredient or product, directly or
    through sub-products. The product itself is not included.
    """
    by_ingredient, by_component, _components = _recipe_maps()
    if ingredient_id is not None:
        frontier = list(by_ingredient.get(ingredient_id, set()))
    else:
        frontier = list(by_component.get(product_id, set()))

    found = []
    seen = set()
    while frontier:
        current = frontier.pop(0)
        if current in seen or current == product_id:
            continue
        seen.add(current)
        found.append(current)
        frontier.extend(by_component.get(current, set()))
    return found


def find_recipe_cycle(product_id, component_ids):
    """
    Depth-first search of the recipe graph with `product_id`'s components replaced
    by `component_ids`. Returns the cycle as a list of product names, or None.
    """
    _by_ingredient, _by_component, components_of = _recipe_maps()
    components_of[product_id] = set(component_ids)

    def visit(node, path, visited):
        for child in sorted(components_of.get(node, ())):
            if child == product_id:
                return path + [child]
            if child in visited:
                continue
            visited.add(child)
            cycle = visit(child, path + [child], visited)
            if cycle:
                return cycle
        return None

    cycle_ids = visit(product_id, [product_id], set())
    if not cycle_ids:
        return None
    names = {p.id: p.name for p in Product.query.filter(Product.id.in_(set(cycle_ids))).all()}
    return [names.get(pid, str(pid)) for pid in cycle_ids]


# ----------------------------
# Price history
# ----------------------------
def record_price_history(item_type, item_name, old_price, new_price, change_type,
                         change_reason=None, ingredient_id=None, product_id=None):
    entry = PriceHistory(
        item_type=item_type,
        item_name=item_name,
        old_price=old_price,
        new_price=new_price,
        change_type=change_type,
        change_reason=change_reason,
        ingredient_id=ingredient_id,
        product_id=product_id
    )
    db.session.add(entry)
    return entry


@contextmanager
def track_cost_changes(product_ids, change_type, change_reason=None):
    """
    Snapshot the total cost of `product_ids`, let the caller mutate inside the block,
    then append one PriceHistory row per product whose cost moved by more than
    COST_CHANGE_EPSILON. Everything stays in the caller's transaction.

    Yields the list of changes, filled in when the block exits.
    """
    changes = []
    ids = list(dict.fromkeys(product_ids))
    before = {}
    if ids:
        snapshot_cache = CostCache()
        for product in Product.query.filter(Product.id.in_(ids)).all():
            cost = safe_product_cost(product, snapshot_cache)
            if cost is not None:
                before[product.id] = cost.total_cost

    yield changes

    db.session.flush()
    if not before:
        return
    db.session.expire_all()

    after_cache = CostCache()
    for product_id in ids:
        if product_id not in before:
            continue
        product = db.session.get(Product, product_id)
        if product is None:
            continue
        cost = safe_product_cost(product, after_cache)
        if cost is None:
            continue
        old_cost = before[product_id]
        if abs(cost.total_cost - old_cost) > COST_CHANGE_EPSILON:
            record_price_history(
                'product', product.name, old_cost, cost.total_cost, change_type,
                change_reason=change_reason, product_id=product.id
            )
            changes.append({'productId': product.id, 'oldCost': old_cost, 'newCost': cost.total_cost})

    if changes:
        logger.info("Recorded %d product cost change(s) for %s", len(changes), change_type)


def all_product_ids():
    return [row.id for row in Product.query.with_entities(Product.id).all()]


def apply_changes(obj, changes, nullable=()):
    """Copy validated fields onto a model; None only clears columns listed in `nullable`."""
    for key, value in changes.items():
        if value is None and key not in nullable:
            continue
        setattr(obj, key, value)
    return obj


def plan_unit_conversion(ingredient, new_unit):
    """
    Work out the converted quantity of every recipe line using `ingredient` when its
    unit becomes `new_unit`. Nothing is modified; raises UnitConversionError listing
    every line that cannot follow the change.
    """
    planned = []
    problems = []
    for line in ingredient.recipe_lines:
        from_unit = line.unit or ingredient.unit
        converted = convert_units(line.quantity, from_unit, new_unit)
        if converted is None:
            problems.append({
                'recipeId': line.id,
                'productId': line.product_id,
                'productName': line.product.name if line.product else None,
                'quantity': line.quantity,
                'fromUnit': from_unit,
                'toUnit': new_unit,
            })
        else:
            planned.append((line, converted))

    if problems:
        products = ", ".join(f"{p['productName']} ({p['quantity']} {p['fromUnit']})" for p in problems)
        raise UnitConversionError(
            _("Não é possível alterar a unidade de %(name)s para %(unit)s. Receitas incompatíveis: %(products)s",
              name=ingredient.name, unit=new_unit, products=products),
            problems
        )
    return planned

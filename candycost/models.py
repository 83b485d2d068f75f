from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Custom exceptions
class CircularRecipeError(Exception):
    """Raised when a product ends up (directly or transitively) inside its own recipe"""

    def __init__(self, cycle):
        self.cycle = list(cycle)
        super().__init__(" -> ".join(str(name) for name in self.cycle))


class UnitConversionError(Exception):
    """Raised when recipe quantities cannot follow an ingredient's unit change"""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details or []


def _iso(value):
    return value.isoformat() if value else None


class Ingredient(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Float, nullable=False)  # Package quantity, in `unit`
    unit = db.Column(db.String(30), nullable=False)
    price = db.Column(db.Float, nullable=False)  # Package price
    brand = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def unit_price(self):
        return self.price / self.quantity if self.quantity else 0

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'quantity': self.quantity,
            'unit': self.unit,
            'price': self.price,
            'brand': self.brand,
            'unitPrice': self.unit_price,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class Product(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_also_ingredient = db.Column(db.Boolean, default=False, nullable=False)  # Usable in other recipes
    margin_percentage = db.Column(db.Float, default=60.0, nullable=False)
    preparation_time_minutes = db.Column(db.Integer, default=60, nullable=False)
    yield_quantity = db.Column(db.Float, default=1.0, nullable=False)
    yield_unit = db.Column(db.String(30), default='unidade', nullable=False)
    sale_price = db.Column(db.Float, default=0.0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, include_recipes=False):
        data = {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'description': self.description,
            'isAlsoIngredient': self.is_also_ingredient,
            'marginPercentage': self.margin_percentage,
            'preparationTimeMinutes': self.preparation_time_minutes,
            'yield': self.yield_quantity,
            'yieldUnit': self.yield_unit,
            'salePrice': self.sale_price,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }
        if include_recipes:
            data['recipes'] = [r.to_dict(include_refs=True) for r in self.recipes]
        return data


class Recipe(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=False)
    ingredient_id = db.Column(db.Integer, db.ForeignKey('ingredient.id'), nullable=True)
    product_ingredient_id = db.Column(db.Integer, db.ForeignKey('product.id'), nullable=True)  # Sub-recipe
    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(30), nullable=False)

    product = db.relationship(
        'Product', foreign_keys=[product_id],
        backref=db.backref('recipes', cascade='all, delete-orphan', order_by='Recipe.id')
    )
    ingredient = db.relationship(
        'Ingredient',
        backref=db.backref('recipe_lines', cascade='all')
    )
    product_ingredient = db.relationship(
        'Product', foreign_keys=[product_ingredient_id],
        backref=db.backref('used_in', cascade='all')
    )

    __table_args__ = (
        db.CheckConstraint(
            '(ingredient_id IS NULL) <> (product_ingredient_id IS NULL)',
            name='recipe_exactly_one_component'
        ),
    )

    def to_dict(self, include_refs=False):
        data = {
            'id': self.id,
            'productId': self.product_id,
            'ingredientId': self.ingredient_id,
            'productIngredientId': self.product_ingredient_id,
            'quantity': self.quantity,
            'unit': self.unit
        }
        if include_refs:
            data['ingredient'] = self.ingredient.to_dict() if self.ingredient else None
            data['productIngredient'] = self.product_ingredient.to_dict() if self.product_ingredient else None
        return data


class FixedCost(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    value = db.Column(db.Float, nullable=False)
    recurrence = db.Column(db.String(20), nullable=False)  # 'monthly', 'quarterly', 'yearly'
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'value': self.value,
            'recurrence': self.recurrence,
            'description': self.description,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


WEEKDAY_FIELDS = [
    'work_monday', 'work_tuesday', 'work_wednesday', 'work_thursday',
    'work_friday', 'work_saturday', 'work_sunday'
]


class WorkConfiguration(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    hours_per_day = db.Column(db.Float, default=8.0, nullable=False)
    days_per_month = db.Column(db.Float, default=22.0, nullable=False)  # Legacy figure

    # Weekday schedule; all NULL means the legacy days_per_month figure applies
    work_monday = db.Column(db.Boolean, nullable=True)
    work_tuesday = db.Column(db.Boolean, nullable=True)
    work_wednesday = db.Column(db.Boolean, nullable=True)
    work_thursday = db.Column(db.Boolean, nullable=True)
    work_friday = db.Column(db.Boolean, nullable=True)
    work_saturday = db.Column(db.Boolean, nullable=True)
    work_sunday = db.Column(db.Boolean, nullable=True)

    hourly_rate = db.Column(db.Float, default=25.0, nullable=False)
    high_cost_alert_threshold = db.Column(db.Float, default=50.0, nullable=False)
    currency_symbol = db.Column(db.String(10), default='R$', nullable=False)

    # Derived from the schedule, refreshed on every update
    annual_working_days = db.Column(db.Integer, nullable=True)
    annual_working_hours = db.Column(db.Float, nullable=True)
    monthly_working_hours = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def uses_weekdays(self):
        return any(getattr(self, field) is not None for field in WEEKDAY_FIELDS)

    def to_dict(self):
        return {
            'id': self.id,
            'hoursPerDay': self.hours_per_day,
            'daysPerMonth': self.days_per_month,
            'workMonday': self.work_monday,
            'workTuesday': self.work_tuesday,
            'workWednesday': self.work_wednesday,
            'workThursday': self.work_thursday,
            'workFriday': self.work_friday,
            'workSaturday': self.work_saturday,
            'workSunday': self.work_sunday,
            'hourlyRate': self.hourly_rate,
            'highCostAlertThreshold': self.high_cost_alert_threshold,
            'currencySymbol': self.currency_symbol,
            'annualWorkingDays': self.annual_working_days,
            'annualWorkingHours': self.annual_working_hours,
            'monthlyWorkingHours': self.monthly_working_hours,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }


class PriceHistory(db.Model):
    """Append-only record of price and cost changes. Rows outlive the items they describe."""
    __tablename__ = 'price_history'

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(20), nullable=False)  # 'ingredient', 'product', 'fixed_cost'
    item_name = db.Column(db.String(150), nullable=False)
    old_price = db.Column(db.Float, nullable=False)
    new_price = db.Column(db.Float, nullable=False)
    change_type = db.Column(db.String(40), nullable=False)
    change_reason = db.Column(db.String(255), nullable=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey('ingredient.id', ondelete='SET NULL'), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey('product.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'itemType': self.item_type,
            'itemName': self.item_name,
            'oldPrice': self.old_price,
            'newPrice': self.new_price,
            'changeType': self.change_type,
            'changeReason': self.change_reason,
            'ingredientId': self.ingredient_id,
            'productId': self.product_id,
            'createdAt': _iso(self.created_at)
        }


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    role = db.Column(db.String(10), default='user', nullable=False)  # 'admin' or 'user'
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'role': self.role,
            'createdAt': _iso(self.created_at)
        }


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    action = db.Column(db.String(50), nullable=False)
    target_type = db.Column(db.String(50), nullable=False)
    target_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
            'action': self.action,
            'targetType': self.target_type,
            'targetId': self.target_id,
            'details': self.details
        }

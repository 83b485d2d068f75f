from .auth import auth_blueprint
from .ingredients import ingredients_blueprint
from .products import products_blueprint
from .fixed_costs import fixed_costs_blueprint
from .price_history import price_history_blueprint
from .dashboard import dashboard_blueprint
from .reports import reports_blueprint
from .settings import settings_blueprint
from .users import users_blueprint
from .admin import admin_blueprint

import io
import json
from datetime import datetime
from flask import Blueprint, request, send_file, jsonify, current_app
from flask_babel import gettext as _
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest
from ..models import (
    db, Ingredient, Product, Recipe, FixedCost, PriceHistory, User, AuditLog, WEEKDAY_FIELDS
)
from ..schemas import AdminUserUpdate, ResetPasswordRequest, PromoteUserRequest
from .auth import admin_required, current_user, hash_password
from .users import ensure_email_available
from .utils import (
    log_audit, get_json_body, apply_changes, get_work_configuration, refresh_working_hours,
    convert_legacy_configuration
)

admin_blueprint = Blueprint('admin', __name__)

BACKUP_APPLICATION = 'CandyCost'
BACKUP_VERSION = '1.0'

INGREDIENT_FIELDS = ['name', 'category', 'quantity', 'unit', 'price', 'brand']
PRODUCT_FIELDS = [
    'name', 'category', 'description', 'is_also_ingredient', 'margin_percentage',
    'preparation_time_minutes', 'yield_quantity', 'yield_unit', 'sale_price'
]
FIXED_COST_FIELDS = ['name', 'category', 'value', 'recurrence', 'description', 'is_active']
PRICE_HISTORY_FIELDS = ['item_type', 'item_name', 'old_price', 'new_price', 'change_type', 'change_reason']
WORK_CONFIGURATION_FIELDS = [
    'hours_per_day', 'days_per_month', 'hourly_rate', 'high_cost_alert_threshold', 'currency_symbol'
] + WEEKDAY_FIELDS

# Older backups store decimals as strings
NUMERIC_FIELDS = {
    'quantity', 'price', 'margin_percentage', 'yield_quantity', 'sale_price', 'value',
    'old_price', 'new_price', 'hours_per_day', 'days_per_month', 'hourly_rate', 'high_cost_alert_threshold'
}
ALIASES = {'yield_quantity': 'yield'}


def _get_user(user_id):
    return db.get_or_404(User, user_id, description=_("Usuário não encontrado"))


# ----------------------------
# User Management
# ----------------------------
@admin_blueprint.route('/api/admin/users')
@admin_required
def list_users():
    users = User.query.order_by(User.created_at).all()
    return jsonify([u.to_dict() for u in users])


@admin_blueprint.route('/api/admin/users/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    user = _get_user(user_id)
    changes = AdminUserUpdate.model_validate(get_json_body()).changes()
    if changes.get('email'):
        ensure_email_available(changes['email'], user)
    if user.id == current_user().id and changes.get('role') == 'user':
        raise BadRequest(_("Você não pode remover seu próprio acesso de administrador"))

    apply_changes(user, changes, nullable=('last_name',))
    log_audit("UPDATE", "User", user.id, f"Admin updated user {user.email}")
    db.session.commit()
    return jsonify(user.to_dict())


@admin_blueprint.route('/api/admin/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    user = _get_user(user_id)
    if user.id == current_user().id:
        raise BadRequest(_("Você não pode excluir sua própria conta"))

    email = user.email
    db.session.delete(user)
    log_audit("DELETE", "User", user_id, f"Deleted user {email}")
    db.session.commit()
    return jsonify({'message': _("Usuário excluído com sucesso")})


@admin_blueprint.route('/api/admin/users/<int:user_id>/reset-password', methods=['PUT'])
@admin_required
def reset_password(user_id):
    user = _get_user(user_id)
    data = ResetPasswordRequest.model_validate(get_json_body())
    user.password_hash = hash_password(data.new_password)
    log_audit("PASSWORD_RESET", "User", user.id, f"Password reset for {user.email}")
    db.session.commit()
    return jsonify({'message': _("Senha redefinida com sucesso")})


@admin_blueprint.route('/api/admin/promote-user', methods=['POST'])
@admin_required
def promote_user():
    data = PromoteUserRequest.model_validate(get_json_body())
    user = User.query.filter_by(email=data.email.lower()).first()
    if user is None:
        return jsonify({'message': _("Usuário não encontrado")}), 404

    user.role = 'admin'
    log_audit("PROMOTE", "User", user.id, f"{user.email} promoted to admin")
    db.session.commit()
    return jsonify({'message': _("Usuário promovido a administrador"), 'user': user.to_dict()})


@admin_blueprint.route('/api/admin/audit-log')
@admin_required
def audit_log():
    limit = request.args.get('limit', 200, type=int)
    logs = AuditLog.query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([log.to_dict() for log in logs])


# ----------------------------
# Backup / Restore
# ----------------------------
def build_backup():
    products = []
    for product in Product.query.order_by(Product.id).all():
        data = product.to_dict()
        data['recipes'] = [line.to_dict() for line in product.recipes]
        products.append(data)

    config = get_work_configuration()
    return {
        'application': BACKUP_APPLICATION,
        'version': BACKUP_VERSION,
        'timestamp': datetime.utcnow().isoformat(),
        'data': {
            'ingredients': [i.to_dict() for i in Ingredient.query.order_by(Ingredient.id).all()],
            'products': products,
            'priceHistory': [h.to_dict() for h in PriceHistory.query.order_by(PriceHistory.id).all()],
            'fixedCosts': [c.to_dict() for c in FixedCost.query.order_by(FixedCost.id).all()],
            'workConfiguration': config.to_dict() if config.id is not None else None,
        }
    }


@admin_blueprint.route('/api/admin/backup')
@admin_required
def backup():
    data = build_backup()
    counts = {key: len(value) for key, value in data['data'].items() if isinstance(value, list)}

    json_str = json.dumps(data, indent=2, ensure_ascii=False)
    mem = io.BytesIO()
    mem.write(json_str.encode('utf-8'))
    mem.seek(0)

    log_audit("BACKUP", "System", details=f"Backup created: {counts}")
    db.session.commit()
    current_app.logger.info("Backup created: %s", counts)

    filename = f"candycost_backup_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
    return send_file(mem, as_attachment=True, download_name=filename, mimetype='application/json')


def _parse_timestamp(value):
    if not value:
        return datetime.utcnow()
    return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)


def _columns(record, fields):
    """Pick model columns out of a camelCase (or snake_case) backup record."""
    values = {}
    for field in fields:
        key = ALIASES.get(field, to_camel(field))
        if key in record:
            value = record[key]
        elif field in record:
            value = record[field]
        else:
            continue
        if field in NUMERIC_FIELDS and value is not None:
            value = float(value)
        values[field] = value
    return values


def read_backup_payload():
    if 'file' in request.files:
        contents = request.files['file'].read()
        if contents.startswith(b'\xef\xbb\xbf'):
            contents = contents[3:]
        try:
            return json.loads(contents.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            log_audit("RESTORE_ERROR", "System", details=f"Failed to parse backup file: {e}")
            db.session.commit()
            raise BadRequest(_("Arquivo de backup inválido"))

    body = get_json_body()
    return body.get('backupData', body)


def restore_backup_data(backup_data):
    """
    Replace ingredients, products, recipes, fixed costs and price history with the
    backup's rows inside the current transaction. Users are kept. Returns row counts.
    """
    data = backup_data['data']
    ingredients = data.get('ingredients') or []
    products = data.get('products') or []
    history = data.get('priceHistory') or []
    fixed_costs = data.get('fixedCosts') or []
    work_configuration = data.get('workConfiguration')

    PriceHistory.query.delete()
    Recipe.query.delete()
    Product.query.delete()
    Ingredient.query.delete()
    FixedCost.query.delete()

    ingredient_ids = {}
    for record in ingredients:
        ingredient = Ingredient(**_columns(record, INGREDIENT_FIELDS))
        ingredient.created_at = _parse_timestamp(record.get('createdAt'))
        ingredient.updated_at = _parse_timestamp(record.get('updatedAt'))
        db.session.add(ingredient)
        db.session.flush()
        ingredient_ids[record.get('id')] = ingredient.id

    product_ids = {}
    for record in products:
        product = Product(**_columns(record, PRODUCT_FIELDS))
        product.created_at = _parse_timestamp(record.get('createdAt'))
        product.updated_at = _parse_timestamp(record.get('updatedAt'))
        db.session.add(product)
        db.session.flush()
        product_ids[record.get('id')] = product.id

    recipe_count = 0
    for record in products:
        for line in record.get('recipes') or []:
            ingredient_id = ingredient_ids.get(line.get('ingredientId'))
            product_ingredient_id = product_ids.get(line.get('productIngredientId'))
            if (ingredient_id is None) == (product_ingredient_id is None):
                current_app.logger.warning("Skipping recipe line without a restorable component: %s", line)
                continue
            db.session.add(Recipe(
                product_id=product_ids[record.get('id')],
                ingredient_id=ingredient_id,
                product_ingredient_id=product_ingredient_id,
                quantity=float(line['quantity']),
                unit=line.get('unit') or ''
            ))
            recipe_count += 1

    for record in fixed_costs:
        cost = FixedCost(**_columns(record, FIXED_COST_FIELDS))
        cost.created_at = _parse_timestamp(record.get('createdAt'))
        cost.updated_at = _parse_timestamp(record.get('updatedAt'))
        db.session.add(cost)

    for record in history:
        db.session.add(PriceHistory(
            ingredient_id=ingredient_ids.get(record.get('ingredientId')),
            product_id=product_ids.get(record.get('productId')),
            created_at=_parse_timestamp(record.get('createdAt')),
            **_columns(record, PRICE_HISTORY_FIELDS)
        ))

    if work_configuration:
        values = _columns(work_configuration, WORK_CONFIGURATION_FIELDS)
        if all(values.get(field) is None for field in WEEKDAY_FIELDS) and values.get('days_per_month'):
            values.update(convert_legacy_configuration(
                values['days_per_month'], values.get('hours_per_day') or 8.0
            ))
        config = get_work_configuration(create=True)
        apply_changes(config, values)
        refresh_working_hours(config)

    db.session.flush()
    return {
        'ingredients': len(ingredients),
        'products': len(products),
        'recipes': recipe_count,
        'fixedCosts': len(fixed_costs),
        'priceHistory': len(history),
        'workConfiguration': 1 if work_configuration else 0,
    }


@admin_blueprint.route('/api/admin/restore-backup', methods=['POST'])
@admin_required
def restore_backup():
    backup_data = read_backup_payload()

    if not isinstance(backup_data, dict) or not backup_data:
        raise BadRequest(_("Dados de backup não fornecidos"))
    if backup_data.get('application') != BACKUP_APPLICATION:
        raise BadRequest(_("Arquivo de backup inválido - não é um backup do CandyCost"))
    if not isinstance(backup_data.get('data'), dict):
        raise BadRequest(_("Arquivo de backup corrompido - dados não encontrados"))

    try:
        restored = restore_backup_data(backup_data)
    except (KeyError, TypeError, ValueError, IntegrityError) as e:
        db.session.rollback()
        current_app.logger.error("Backup restore failed: %s", e)
        log_audit("RESTORE_ERROR", "System", details=f"Malformed backup: {e}")
        db.session.commit()
        raise BadRequest(_("Arquivo de backup corrompido: %(error)s", error=str(e)))

    log_audit("RESTORE", "System", details=f"Backup restored: {restored}")
    db.session.commit()
    current_app.logger.info("Backup restored: %s", restored)

    return jsonify({
        'message': _("Backup restaurado com sucesso"),
        'restored': restored,
        'timestamp': datetime.utcnow().isoformat()
    })

from flask import Blueprint, jsonify, current_app
from flask_babel import gettext as _
from werkzeug.exceptions import BadRequest
from ..models import db, FixedCost, WEEKDAY_FIELDS
from ..schemas import FixedCostCreate, FixedCostUpdate, WorkConfigurationUpdate
from .auth import login_required
from .utils import (
    log_audit, get_json_body, apply_changes, all_product_ids, track_cost_changes, record_price_history,
    monthly_value, calculate_monthly_fixed_costs, fixed_costs_by_category, calculate_fixed_cost_per_hour,
    get_work_configuration, refresh_working_hours, monthly_work_hours, calculate_working_days, has_working_day
)

fixed_costs_blueprint = Blueprint('fixed_costs', __name__)


def _get_fixed_cost(fixed_cost_id):
    return db.get_or_404(FixedCost, fixed_cost_id, description=_("Custo fixo não encontrado"))


def fixed_cost_dict(cost):
    data = cost.to_dict()
    data['monthlyValue'] = monthly_value(cost)
    return data


# ----------------------------
# Fixed Costs
# ----------------------------
@fixed_costs_blueprint.route('/api/fixed-costs')
@login_required
def list_fixed_costs():
    costs = FixedCost.query.order_by(FixedCost.name).all()
    return jsonify([fixed_cost_dict(c) for c in costs])


@fixed_costs_blueprint.route('/api/fixed-costs/active')
@login_required
def list_active_fixed_costs():
    costs = FixedCost.query.filter_by(is_active=True).order_by(FixedCost.name).all()
    return jsonify([fixed_cost_dict(c) for c in costs])


@fixed_costs_blueprint.route('/api/fixed-costs/monthly-total')
@login_required
def monthly_total():
    return jsonify({'monthlyTotal': calculate_monthly_fixed_costs()})


@fixed_costs_blueprint.route('/api/fixed-costs/by-category')
@login_required
def by_category():
    return jsonify(fixed_costs_by_category())


@fixed_costs_blueprint.route('/api/fixed-costs/cost-per-hour')
@login_required
def cost_per_hour():
    config = get_work_configuration()
    return jsonify({
        'costPerHour': calculate_fixed_cost_per_hour(config),
        'monthlyTotal': calculate_monthly_fixed_costs(),
        'monthlyWorkingHours': monthly_work_hours(config)
    })


@fixed_costs_blueprint.route('/api/fixed-costs/<int:fixed_cost_id>')
@login_required
def get_fixed_cost(fixed_cost_id):
    return jsonify(fixed_cost_dict(_get_fixed_cost(fixed_cost_id)))


@fixed_costs_blueprint.route('/api/fixed-costs', methods=['POST'])
@login_required
def create_fixed_cost():
    data = FixedCostCreate.model_validate(get_json_body())
    reason = _("Novo custo fixo: %(name)s", name=data.name)

    with track_cost_changes(all_product_ids(), 'fixed_cost_update', reason):
        cost = FixedCost(**data.model_dump())
        db.session.add(cost)

    log_audit("CREATE", "FixedCost", cost.id, f"Created fixed cost {cost.name}")
    db.session.commit()
    return jsonify(fixed_cost_dict(cost)), 201


@fixed_costs_blueprint.route('/api/fixed-costs/<int:fixed_cost_id>', methods=['PUT'])
@login_required
def update_fixed_cost(fixed_cost_id):
    cost = _get_fixed_cost(fixed_cost_id)
    changes = FixedCostUpdate.model_validate(get_json_body()).changes()
    name = changes.get('name') or cost.name
    reason = _("Alteração no custo fixo %(name)s", name=name)

    old_value = cost.value
    new_value = changes.get('value')
    with track_cost_changes(all_product_ids(), 'fixed_cost_update', reason):
        if new_value is not None and new_value != old_value:
            record_price_history('fixed_cost', name, old_value, new_value, 'fixed_cost_update', change_reason=reason)
        apply_changes(cost, changes, nullable=('description',))

    log_audit("UPDATE", "FixedCost", cost.id, f"Updated fixed cost {name}")
    db.session.commit()
    return jsonify(fixed_cost_dict(cost))


@fixed_costs_blueprint.route('/api/fixed-costs/<int:fixed_cost_id>/toggle', methods=['PATCH'])
@login_required
def toggle_fixed_cost(fixed_cost_id):
    cost = _get_fixed_cost(fixed_cost_id)
    reason = _("Custo fixo %(name)s ativado/desativado", name=cost.name)

    with track_cost_changes(all_product_ids(), 'fixed_cost_update', reason):
        cost.is_active = not cost.is_active

    log_audit("UPDATE", "FixedCost", cost.id, f"Toggled fixed cost {cost.name} to active={cost.is_active}")
    db.session.commit()
    return jsonify(fixed_cost_dict(cost))


@fixed_costs_blueprint.route('/api/fixed-costs/<int:fixed_cost_id>', methods=['DELETE'])
@login_required
def delete_fixed_cost(fixed_cost_id):
    cost = _get_fixed_cost(fixed_cost_id)
    name = cost.name

    with track_cost_changes(all_product_ids(), 'fixed_cost_update', _("Custo fixo removido: %(name)s", name=name)):
        db.session.delete(cost)

    log_audit("DELETE", "FixedCost", fixed_cost_id, f"Deleted fixed cost {name}")
    db.session.commit()
    return jsonify({'message': _("Custo fixo excluído com sucesso")})


# ----------------------------
# Work Configuration
# ----------------------------
def work_configuration_dict(config):
    data = config.to_dict()
    if config.uses_weekdays:
        data['calculation'] = calculate_working_days(config)
    data['monthlyWorkingHours'] = monthly_work_hours(config)
    return data


@fixed_costs_blueprint.route('/api/fixed-costs/work-configuration')
@login_required
def get_work_config():
    return jsonify(work_configuration_dict(get_work_configuration()))


@fixed_costs_blueprint.route('/api/fixed-costs/work-configuration', methods=['PUT'])
@login_required
def update_work_config():
    changes = WorkConfigurationUpdate.model_validate(get_json_body()).changes()
    config = get_work_configuration(create=True)

    flags = {field: changes.get(field, getattr(config, field)) for field in WEEKDAY_FIELDS}
    if any(value is not None for value in flags.values()):
        if not has_working_day(flags):
            raise BadRequest(_("Selecione pelo menos um dia de trabalho"))
    else:
        days_per_month = changes['days_per_month'] if 'days_per_month' in changes else config.days_per_month
        if (days_per_month or 0) <= 0:
            raise BadRequest(_("Os dias trabalhados por mês devem ser maiores que zero"))

    with track_cost_changes(all_product_ids(), 'work_configuration_update', _("Configuração de trabalho alterada")):
        apply_changes(config, changes)
        refresh_working_hours(config)

    log_audit("UPDATE", "WorkConfiguration", config.id, f"Monthly working hours now {config.monthly_working_hours}")
    db.session.commit()
    current_app.logger.info("Work configuration updated: %.2f monthly hours", config.monthly_working_hours or 0)
    return jsonify(work_configuration_dict(config))

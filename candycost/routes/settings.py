from flask import Blueprint, jsonify, current_app
from ..models import db
from ..schemas import SettingsUpdate
from .auth import login_required
from .utils import log_audit, get_json_body, apply_changes, get_work_configuration

settings_blueprint = Blueprint('settings', __name__)

PRICE_INCREASE_ALERT_THRESHOLD = 20


def system_settings(config):
    return {
        'defaultMarginPercentage': current_app.config['DEFAULT_MARGIN_PERCENTAGE'],
        'priceIncreaseAlertThreshold': PRICE_INCREASE_ALERT_THRESHOLD,
        'highCostAlertThreshold': config.high_cost_alert_threshold,
        'enableCostAlerts': True,
        'enablePriceAlerts': True,
        'autoCalculateMargins': True,
        'currencySymbol': config.currency_symbol,
        'businessName': current_app.config['BUSINESS_NAME'],
    }


@settings_blueprint.route('/api/settings')
@login_required
def get_settings():
    return jsonify(system_settings(get_work_configuration()))


@settings_blueprint.route('/api/settings', methods=['PUT'])
@login_required
def update_settings():
    changes = SettingsUpdate.model_validate(get_json_body()).changes()
    config = get_work_configuration(create=True)
    apply_changes(config, changes)
    db.session.flush()
    log_audit("UPDATE", "Settings", config.id, f"Updated settings: {', '.join(sorted(changes)) or 'none'}")
    db.session.commit()
    return jsonify(system_settings(config))

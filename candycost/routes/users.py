from flask import Blueprint, jsonify
from flask_babel import gettext as _
from werkzeug.exceptions import BadRequest
from werkzeug.security import check_password_hash
from ..models import db, User
from ..schemas import ProfileUpdate, ChangePasswordRequest
from .auth import login_required, current_user, hash_password
from .utils import log_audit, get_json_body, apply_changes

users_blueprint = Blueprint('users', __name__)


def ensure_email_available(email, user):
    other = User.query.filter_by(email=email).first()
    if other is not None and other.id != user.id:
        raise BadRequest(_("Este email já está em uso"))


@users_blueprint.route('/api/user/profile')
@login_required
def get_profile():
    return jsonify(current_user().to_dict())


@users_blueprint.route('/api/user/profile', methods=['PUT'])
@login_required
def update_profile():
    user = current_user()
    changes = ProfileUpdate.model_validate(get_json_body()).changes()
    if changes.get('email'):
        ensure_email_available(changes['email'], user)

    apply_changes(user, changes, nullable=('last_name',))
    log_audit("UPDATE", "User", user.id, f"Profile updated for {user.email}")
    db.session.commit()
    return jsonify(user.to_dict())


@users_blueprint.route('/api/user/change-password', methods=['PUT'])
@login_required
def change_password():
    user = current_user()
    data = ChangePasswordRequest.model_validate(get_json_body())

    if not check_password_hash(user.password_hash, data.current_password):
        log_audit("PASSWORD_CHANGE_FAILURE", "User", user.id, f"Wrong current password for {user.email}")
        db.session.commit()
        raise BadRequest(_("Senha atual incorreta"))

    user.password_hash = hash_password(data.new_password)
    log_audit("PASSWORD_CHANGE", "User", user.id, f"Password changed for {user.email}")
    db.session.commit()
    return jsonify({'message': _("Senha alterada com sucesso")})

from functools import wraps
from flask import Blueprint, request, session, jsonify, redirect, g, current_app
from flask_babel import gettext as _
from werkzeug.security import check_password_hash, generate_password_hash
from ..models import db, User
from ..schemas import LoginRequest, RegisterRequest
from .utils import log_audit, get_json_body

auth_blueprint = Blueprint('auth', __name__)


def current_user():
    return g.get('user')


def login_required(view):
    @wraps(view)
    def wrapped_view(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'message': _("Você precisa fazer login para acessar esta página")}), 401
        return view(*args, **kwargs)
    return wrapped_view


def admin_required(view):
    @wraps(view)
    def wrapped_view(*args, **kwargs):
        user = g.get('user')
        if user is None:
            return jsonify({'message': _("Você precisa fazer login para acessar esta página")}), 401
        if not user.is_admin:
            log_audit("ACCESS_DENIED", "User", user.id, f"{user.email} tried {request.method} {request.path}")
            db.session.commit()
            current_app.logger.warning("Admin access denied for %s on %s", user.email, request.path)
            return jsonify({'message': _("Acesso negado. Apenas administradores podem realizar esta ação")}), 403
        return view(*args, **kwargs)
    return wrapped_view


def hash_password(password):
    return generate_password_hash(password)


@auth_blueprint.before_app_request
def load_logged_in_user():
    user_id = session.get('user_id')
    g.user = db.session.get(User, user_id) if user_id is not None else None


# ----------------------------
# Session management
# ----------------------------
@auth_blueprint.route('/api/auth/login', methods=['POST'])
def login():
    data = LoginRequest.model_validate(get_json_body())
    user = User.query.filter_by(email=data.email.lower()).first()

    if user is None or not check_password_hash(user.password_hash, data.password):
        log_audit("LOGIN_FAILURE", "User", user.id if user else None, f"Failed login for {data.email}")
        db.session.commit()
        current_app.logger.info("Failed login for %s", data.email)
        return jsonify({'message': _("Email ou senha incorretos. Verifique suas informações.")}), 401

    session.clear()
    session['user_id'] = user.id
    log_audit("LOGIN_SUCCESS", "User", user.id, f"Login {user.email}")
    db.session.commit()
    return jsonify({'message': _("Login realizado com sucesso"), 'user': user.to_dict()})


@auth_blueprint.route('/api/auth/register', methods=['POST'])
def register():
    data = RegisterRequest.model_validate(get_json_body())

    if User.query.filter_by(email=data.email).first():
        log_audit("REGISTER_FAILURE", "User", None, f"Email already registered: {data.email}")
        db.session.commit()
        return jsonify({'message': _("Este email já está cadastrado. Use outro email ou faça login.")}), 400

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role='user'
    )
    db.session.add(user)
    db.session.flush()
    log_audit("REGISTER_SUCCESS", "User", user.id, f"Registered {user.email}")
    db.session.commit()

    session.clear()
    session['user_id'] = user.id
    return jsonify({'message': _("Usuário criado com sucesso"), 'user': user.to_dict()}), 201


@auth_blueprint.route('/api/auth/logout', methods=['POST'])
def logout():
    user = current_user()
    if user is not None:
        log_audit("LOGOUT", "User", user.id, f"Logout {user.email}")
        db.session.commit()
    session.pop('user_id', None)
    return jsonify({'message': _("Logout realizado com sucesso")})


@auth_blueprint.route('/api/logout', methods=['GET'])
def logout_redirect():
    session.pop('user_id', None)
    return redirect('/')


@auth_blueprint.route('/api/auth/user')
@login_required
def get_current_user():
    return jsonify(current_user().to_dict())

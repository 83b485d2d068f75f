import re
from typing import List, Literal, Optional
from flask_babel import gettext as _
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#+\-_.=])[A-Za-z\d@$!%*?&#+\-_.=]+$')
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

Recurrence = Literal['monthly', 'quarterly', 'yearly']


def password_problem(password):
    """Return the reason a password is too weak, or None when it is acceptable."""
    if not password or len(password) < 8:
        return _("A senha deve ter pelo menos 8 caracteres")
    if not PASSWORD_PATTERN.match(password):
        return _("A senha deve conter pelo menos uma letra minúscula, uma maiúscula, um número e um caractere especial")
    return None


def email_problem(email):
    if not email or not EMAIL_PATTERN.match(email):
        return _("Email inválido")
    return None


def first_error_message(error: ValidationError) -> str:
    """Portuguese message for the first rule a payload violated."""
    err = error.errors()[0]
    field = ".".join(str(part) for part in err.get('loc', ())) or _("corpo")
    err_type = err.get('type')

    if err_type == 'value_error' and err.get('ctx', {}).get('error') is not None:
        return str(err['ctx']['error'])
    if err_type == 'missing':
        return _("Campo obrigatório: %(field)s", field=field)
    if err_type == 'string_too_short':
        return _("O campo %(field)s não pode ficar vazio", field=field)
    if err_type in ('greater_than', 'greater_than_equal'):
        limit = err['ctx'].get('gt', err['ctx'].get('ge'))
        if err_type == 'greater_than':
            return _("O campo %(field)s deve ser maior que %(limit)s", field=field, limit=limit)
        return _("O campo %(field)s deve ser maior ou igual a %(limit)s", field=field, limit=limit)
    if err_type == 'literal_error':
        return _("Valor não permitido para o campo %(field)s", field=field)
    return _("Valor inválido para o campo %(field)s", field=field)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    def changes(self):
        """Snake-case dict of the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


# ----------------------------
# Auth & users
# ----------------------------
class LoginRequest(CamelModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterRequest(CamelModel):
    email: str
    password: str
    first_name: str = Field(min_length=1)
    last_name: Optional[str] = None

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        problem = email_problem(value)
        if problem:
            raise ValueError(problem)
        return value.lower()

    @field_validator('password')
    @classmethod
    def check_password(cls, value):
        problem = password_problem(value)
        if problem:
            raise ValueError(problem)
        return value


class ProfileUpdate(CamelModel):
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = None

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        if value is None:
            return value
        problem = email_problem(value)
        if problem:
            raise ValueError(problem)
        return value.lower()


class AdminUserUpdate(ProfileUpdate):
    role: Optional[Literal['admin', 'user']] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator('new_password')
    @classmethod
    def check_password(cls, value):
        problem = password_problem(value)
        if problem:
            raise ValueError(problem)
        return value


class ResetPasswordRequest(CamelModel):
    new_password: str

    @field_validator('new_password')
    @classmethod
    def check_password(cls, value):
        problem = password_problem(value)
        if problem:
            raise ValueError(problem)
        return value


class PromoteUserRequest(CamelModel):
    email: str = Field(min_length=1)


# ----------------------------
# Ingredients
# ----------------------------
class IngredientCreate(CamelModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1)
    price: float = Field(ge=0)
    brand: Optional[str] = None


class IngredientUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = Field(default=None, min_length=1)
    price: Optional[float] = Field(default=None, ge=0)
    brand: Optional[str] = None


# ----------------------------
# Products & recipes
# ----------------------------
class ProductCreate(CamelModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    description: Optional[str] = None
    is_also_ingredient: bool = False
    margin_percentage: Optional[float] = Field(default=None, ge=0)
    preparation_time_minutes: int = Field(default=60, ge=0)
    yield_quantity: float = Field(default=1.0, gt=0, alias='yield')
    yield_unit: str = Field(default='unidade', min_length=1)
    sale_price: float = Field(default=0.0, ge=0)


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_also_ingredient: Optional[bool] = None
    margin_percentage: Optional[float] = Field(default=None, ge=0)
    preparation_time_minutes: Optional[int] = Field(default=None, ge=0)
    yield_quantity: Optional[float] = Field(default=None, gt=0, alias='yield')
    yield_unit: Optional[str] = Field(default=None, min_length=1)
    sale_price: Optional[float] = Field(default=None, ge=0)


class RecipeLineIn(CamelModel):
    ingredient_id: Optional[int] = None
    product_ingredient_id: Optional[int] = None
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1)

    @model_validator(mode='after')
    def exactly_one_component(self):
        if (self.ingredient_id is None) == (self.product_ingredient_id is None):
            raise ValueError(_("Cada linha da receita deve referenciar um ingrediente ou um produto, nunca ambos"))
        return self


class RecipeSaveRequest(CamelModel):
    recipes: List[RecipeLineIn] = Field(default_factory=list)


# ----------------------------
# Fixed costs & work configuration
# ----------------------------
class FixedCostCreate(CamelModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    value: float = Field(ge=0)
    recurrence: Recurrence = 'monthly'
    description: Optional[str] = None
    is_active: bool = True


class FixedCostUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    value: Optional[float] = Field(default=None, ge=0)
    recurrence: Optional[Recurrence] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class WorkConfigurationUpdate(CamelModel):
    hours_per_day: Optional[float] = None
    days_per_month: Optional[float] = Field(default=None, ge=0)
    work_monday: Optional[bool] = None
    work_tuesday: Optional[bool] = None
    work_wednesday: Optional[bool] = None
    work_thursday: Optional[bool] = None
    work_friday: Optional[bool] = None
    work_saturday: Optional[bool] = None
    work_sunday: Optional[bool] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    high_cost_alert_threshold: Optional[float] = Field(default=None, ge=0)
    currency_symbol: Optional[str] = Field(default=None, min_length=1)

    @field_validator('hours_per_day')
    @classmethod
    def positive_hours(cls, value):
        if value is not None and value <= 0:
            raise ValueError(_("As horas por dia devem ser maiores que zero"))
        return value


class SettingsUpdate(CamelModel):
    currency_symbol: Optional[str] = Field(default=None, min_length=1)
    high_cost_alert_threshold: Optional[float] = Field(default=None, ge=0)

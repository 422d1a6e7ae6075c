"""
Pool creation and settings forms.

The API takes JSON, so these forms are fed from the decoded body through
form_from_json() rather than from request.form.
"""

from datetime import datetime, timezone
from flask import current_app
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, IntegerField, DecimalField, DateTimeField, SelectField, TextAreaField
from wtforms.validators import DataRequired, InputRequired, Optional, NumberRange, Length, Regexp, StopValidation, ValidationError

GAME_TIME_FORMATS = ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M']


def form_from_json(form_class, body):
    """
    Build a form from a decoded JSON object.

    Values are passed as strings so numeric zero counts as supplied input.
    Keys holding null are treated as not supplied, except for the form's
    NULLABLE_FIELDS, where null is submitted as an empty value.
    """
    nullable = getattr(form_class, 'NULLABLE_FIELDS', ())
    formdata = MultiDict()
    for key, value in body.items():
        if value is None and key in nullable:
            formdata[key] = ''
            continue
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, str) and key == 'game_time':
            value = value.strip().removesuffix('Z')
        formdata[key] = str(value)
    return form_class(formdata=formdata, meta={'csrf': False})


def form_errors(form):
    """Flatten WTForms errors to {field: [messages]}."""
    return {field: list(messages) for field, messages in form.errors.items()}


def finite_number(form, field):
    if field.data is not None and not field.data.is_finite():
        raise StopValidation('Must be a finite number.')


def check_square_price(form, field):
    limit = current_app.config['MAX_SQUARE_PRICE']
    if field.data is not None and field.data > limit:
        raise ValidationError(f'Square price cannot exceed {limit}.')


class PoolForm(FlaskForm):
    """
    Form for creating a pool.
    """
    name = StringField('Pool Name', validators=[DataRequired(), Length(max=100)])
    game_name = StringField('Game', validators=[DataRequired(), Length(max=100)])
    home_team = StringField('Home Team', validators=[DataRequired(), Length(max=50)])
    away_team = StringField('Away Team', validators=[DataRequired(), Length(max=50)])
    game_time = DateTimeField('Game Time (UTC)', validators=[DataRequired()], format=GAME_TIME_FORMATS)
    entry_fee_info = StringField('Entry Fee Info', validators=[Optional(), Length(max=500)])
    rules = TextAreaField('Rules', validators=[Optional(), Length(max=2000)])
    square_price = DecimalField('Square Price', places=2,
                                validators=[InputRequired(), finite_number, NumberRange(min=0)])
    max_squares_per_user = IntegerField('Max Squares Per User',
                                        validators=[InputRequired(), NumberRange(min=1, max=100)])
    visibility = SelectField('Visibility',
                             choices=[('public', 'Public'), ('private', 'Private')],
                             default='public')
    invite_code = StringField('Invite Code',
                              validators=[Optional(), Length(min=8, max=8),
                                          Regexp(r'^[A-Za-z0-9_-]+$', message='Invite code may only use letters, digits, - and _')])

    validate_square_price = check_square_price

    def validate_game_time(self, field):
        """Validate that the game time is in the future"""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if field.data and field.data <= now:
            raise ValidationError('Game time must be in the future.')

    def validate_max_squares_per_user(self, field):
        limit = current_app.config['MAX_SQUARES_PER_USER_LIMIT']
        if field.data is not None and field.data > limit:
            raise ValidationError(f'Max squares per user cannot exceed {limit}.')


class PoolSettingsForm(FlaskForm):
    """
    Form for updating an existing pool. Every field is optional; only the
    fields present in the request are changed.
    """
    name = StringField('Pool Name', validators=[Optional(), Length(min=1, max=100)])
    game_name = StringField('Game', validators=[Optional(), Length(min=1, max=100)])
    home_team = StringField('Home Team', validators=[Optional(), Length(min=1, max=50)])
    away_team = StringField('Away Team', validators=[Optional(), Length(min=1, max=50)])
    game_time = DateTimeField('Game Time (UTC)', validators=[Optional()], format=GAME_TIME_FORMATS)
    entry_fee_info = StringField('Entry Fee Info', validators=[Optional(), Length(max=500)])
    rules = TextAreaField('Rules', validators=[Optional(), Length(max=2000)])
    square_price = DecimalField('Square Price', places=2,
                                validators=[Optional(), finite_number, NumberRange(min=0)])
    max_squares_per_user = IntegerField('Max Squares Per User',
                                        validators=[Optional(), NumberRange(min=1, max=100)])

    validate_square_price = check_square_price

    REQUIRED_WHEN_SUPPLIED = ('name', 'game_name', 'home_team', 'away_team', 'game_time')
    NULLABLE_FIELDS = ('entry_fee_info', 'rules')

    def validate(self, extra_validators=None):
        valid = super().validate(extra_validators=extra_validators)
        for name in self.REQUIRED_WHEN_SUPPLIED:
            field = self._fields[name]
            if field.raw_data and not field.data:
                field.errors = list(field.errors) + ['This field cannot be blank.']
                valid = False
        return valid

    def supplied_fields(self):
        """Names of the fields that were present in the submitted data."""
        return [
            name for name, field in self._fields.items()
            if field.raw_data
        ]

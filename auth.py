import logging
from functools import wraps
from urllib.parse import urlsplit

from flask import Blueprint, flash, jsonify, redirect, render_template, request, session, url_for
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from models import User, db
from schemas import AccountInput, LoginInput, PasswordChangeInput, RegisterInput, validation_errors

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)


# ---------------------- Auth Helpers ----------------------
def current_user():
    uid = session.get('user_id')
    if uid:
        return db.session.get(User, uid)
    return None


def login_required(view_func):
    @wraps(view_func)
    def wrapped(*args, **kwargs):
        if not current_user():
            return redirect(url_for('auth.login', next=request.path))
        return view_func(*args, **kwargs)
    return wrapped


def is_ajax():
    return request.headers.get('X-Requested-With') == 'XMLHttpRequest'


def is_local_path(url):
    # only same-site paths; '//host' and '/\host' are read as off-site by browsers
    if not url or not url.startswith('/') or url.startswith(('//', '/\\')):
        return False
    parts = urlsplit(url)
    return not parts.scheme and not parts.netloc


def _find_user(**criteria):
    return db.session.scalar(select(User).filter_by(**criteria))


def _taken_by_other(field, value, user_id=None):
    other = _find_user(**{field: value})
    return other is not None and other.id != user_id


# ---------------------- Routes: Auth ----------------------
@bp.route('/register', methods=['GET', 'POST'])
def register():
    if request.method == 'GET':
        return render_template('auth/register.html')

    def fail(errors):
        if is_ajax():
            return jsonify({'success': False, 'errors': errors}), 400
        for messages in errors.values():
            for message in messages:
                flash(message, 'error')
        return render_template('auth/register.html', errors=errors, data=request.form), 400

    try:
        data = RegisterInput.from_form(request.form)
    except ValidationError as exc:
        return fail(validation_errors(exc))
    if _find_user(username=data.username):
        return fail({'username': ['Username already taken.']})
    if _find_user(email=data.email):
        return fail({'email': ['Email already in use.']})

    user = User(username=data.username, email=data.email, password_hash=generate_password_hash(data.password))
    db.session.add(user)
    try:
        db.session.commit()
    except SQLAlchemyError:
        logger.exception('Registration failed for %s', data.username)
        db.session.rollback()
        return fail({'general': ['Registration failed. Please try again.']})
    logger.info('Registered user %s', user.id)
    if is_ajax():
        return jsonify({'success': True})
    flash('Registration successful. Please log in.', 'success')
    return redirect(url_for('auth.login'))


@bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        try:
            data = LoginInput.from_form(request.form)
        except ValidationError as exc:
            errors = validation_errors(exc)
            flash('Username and password are required.', 'error')
            return render_template('auth/login.html', errors=errors), 400
        user = _find_user(username=data.username)
        if not user or not check_password_hash(user.password_hash, data.password):
            logger.info('Failed login for %s', data.username)
            flash('Invalid username or password.', 'error')
            return render_template('auth/login.html'), 401
        session.clear()
        session['user_id'] = user.id
        logger.info('User %s logged in', user.id)
        flash('Welcome back!', 'success')
        next_url = request.args.get('next')
        if not is_local_path(next_url):
            next_url = url_for('views.dashboard')
        return redirect(next_url)
    return render_template('auth/login.html')


@bp.route('/logout')
def logout():
    session.clear()
    flash('Logged out.', 'success')
    return redirect(url_for('views.home'))


# ---------------------- Routes: Account ----------------------
@bp.route('/user/edit')
@login_required
def edit_account():
    return render_template('account/edit.html', user=current_user())


@bp.route('/user/update', methods=['POST'])
@login_required
def update_account():
    user = current_user()
    try:
        data = AccountInput.from_form(request.form)
    except ValidationError as exc:
        for messages in validation_errors(exc).values():
            flash(messages[0], 'error')
        return redirect(url_for('auth.edit_account'))
    if _taken_by_other('email', data.email, user.id):
        flash('Email already in use by another account.', 'error')
        return redirect(url_for('auth.edit_account'))
    if _taken_by_other('username', data.username, user.id):
        flash('Username already in use by another account.', 'error')
        return redirect(url_for('auth.edit_account'))

    user.username = data.username
    user.email = data.email
    try:
        db.session.commit()
    except SQLAlchemyError:
        logger.exception('Account update failed for user %s', user.id)
        db.session.rollback()
        flash('There was an error updating your details.', 'error')
        return redirect(url_for('auth.edit_account'))
    flash('Your details have been updated.', 'success')
    return redirect(url_for('auth.edit_account'))


@bp.route('/user/password/update', methods=['POST'])
@login_required
def update_password():
    user = current_user()
    try:
        data = PasswordChangeInput.from_form(request.form)
    except ValidationError as exc:
        for messages in validation_errors(exc).values():
            flash(messages[0], 'error_password')
        return redirect(url_for('auth.edit_account'))
    if not check_password_hash(user.password_hash, data.current_password):
        flash('Current password is incorrect.', 'error_password')
        return redirect(url_for('auth.edit_account'))

    user.password_hash = generate_password_hash(data.new_password)
    try:
        db.session.commit()
    except SQLAlchemyError:
        logger.exception('Password change failed for user %s', user.id)
        db.session.rollback()
        flash('There was an error changing your password.', 'error_password')
        return redirect(url_for('auth.edit_account'))
    logger.info('User %s changed password', user.id)
    flash('Your password has been changed.', 'success_password')
    return redirect(url_for('auth.edit_account'))

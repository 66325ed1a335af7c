import csv
import io
import logging

from flask import Blueprint, abort, flash, jsonify, redirect, render_template, request, url_for
from pydantic import ValidationError

from auth import current_user, is_ajax, login_required
from ml.recommender import generate_recommendations, predict_next_month_expense
from models import LEDGER_MODELS, Expense, Income, Profile, db, to_money
from schemas import LedgerEntryInput, ProfileInput, validation_errors
from services import BalanceService, LedgerStore, ProfileStore, is_owned_by_user, owned_entry, owned_profile

logger = logging.getLogger(__name__)

bp = Blueprint('views', __name__)

KIND_ARG = '<any(expenses, incomes):kind>'
KIND_TITLES = {'expenses': 'Expenses', 'incomes': 'Incomes'}


def _ledger_store(kind):
    return LedgerStore(db.session, LEDGER_MODELS[kind])


def _render_errors(errors):
    for field, messages in errors.items():
        for message in messages:
            flash(f'{field}: {message}' if field != 'general' else message, 'error')


# ---------------------- Routes: Pages ----------------------
@bp.route('/')
def home():
    if current_user():
        return redirect(url_for('views.dashboard'))
    return render_template('home.html')


@bp.route('/dashboard')
@login_required
def dashboard():
    user = current_user()
    balance = BalanceService(db.session)
    return render_template(
        'dashboard.html',
        user=user,
        total_income=balance.get_global_total_income(user.id),
        total_expenses=balance.get_global_total_expenses(user.id),
        current_balance=balance.get_global_balance(user.id),
        profiles=ProfileStore(db.session).get_all_for_user(user.id),
    )


# ---------------------- Routes: Profiles ----------------------
@bp.route('/profiles')
@login_required
def list_profiles():
    profiles = ProfileStore(db.session).get_all_for_user(current_user().id)
    return render_template('profiles/index.html', profiles=profiles)


@bp.route('/profiles/create', methods=['GET', 'POST'])
@login_required
def create_profile():
    if request.method == 'POST':
        user = current_user()
        try:
            data = ProfileInput.from_form(request.form)
        except ValidationError as exc:
            errors = validation_errors(exc)
            _render_errors(errors)
            return render_template('profiles/form.html', profile=None, data=request.form, errors=errors), 400
        profile = Profile(user_id=user.id, **data.model_dump())
        if not ProfileStore(db.session).save(profile):
            flash('Failed to create profile.', 'error')
            return render_template('profiles/form.html', profile=None, data=request.form), 500
        flash('Profile created.', 'success')
        return redirect(url_for('views.show_profile', profile_id=profile.id))
    return render_template('profiles/form.html', profile=None, data={})


@bp.route('/profiles/<int:profile_id>')
@login_required
def show_profile(profile_id):
    profile = owned_profile(db.session, profile_id, current_user().id)
    if profile is None:
        flash('Profile not found.', 'error')
        return redirect(url_for('views.dashboard'))
    return render_template(
        'profiles/show.html',
        profile=profile,
        balance=BalanceService(db.session).calculate_balance(profile.id),
        expenses=LedgerStore(db.session, Expense).get_all_for_profile(profile.id),
        incomes=LedgerStore(db.session, Income).get_all_for_profile(profile.id),
    )


@bp.route('/profiles/<int:profile_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_profile(profile_id):
    profile = owned_profile(db.session, profile_id, current_user().id)
    if profile is None:
        flash('Profile not found.', 'error')
        return redirect(url_for('views.dashboard'))
    if request.method == 'POST':
        try:
            data = ProfileInput.from_form(request.form)
        except ValidationError as exc:
            errors = validation_errors(exc)
            _render_errors(errors)
            return render_template('profiles/form.html', profile=profile, data=request.form, errors=errors), 400
        for field, value in data.model_dump().items():
            setattr(profile, field, value)
        if not ProfileStore(db.session).save(profile):
            flash('Failed to update profile.', 'error')
            return render_template('profiles/form.html', profile=profile, data=request.form), 500
        flash('Profile updated.', 'success')
        return redirect(url_for('views.show_profile', profile_id=profile.id))
    return render_template('profiles/form.html', profile=profile, data={})


@bp.route('/profiles/<int:profile_id>/delete', methods=['POST'])
@login_required
def delete_profile(profile_id):
    if owned_profile(db.session, profile_id, current_user().id) is None:
        flash('Profile not found.', 'error')
        return redirect(url_for('views.dashboard'))
    if ProfileStore(db.session).delete(profile_id):
        flash('Profile deleted.', 'success')
    else:
        flash('Failed to delete profile.', 'error')
    return redirect(url_for('views.list_profiles'))


# ---------------------- Routes: Expenses / Incomes ----------------------
@bp.route(f'/{KIND_ARG}')
@login_required
def list_entries(kind):
    entries = _ledger_store(kind).get_all_for_user(current_user().id)
    return render_template('entries/index.html', kind=kind, title=KIND_TITLES[kind], entries=entries)


def _entry_form(kind, entry, status=200, errors=None):
    profiles = ProfileStore(db.session).get_all_for_user(current_user().id)
    return render_template(
        'entries/form.html', kind=kind, title=KIND_TITLES[kind], entry=entry,
        profiles=profiles, data=request.form, errors=errors or {},
    ), status


def _parse_entry(kind, entry):
    """Validate the posted entry; returns (input, error_response)."""
    try:
        data = LedgerEntryInput.from_form(request.form)
    except ValidationError as exc:
        errors = validation_errors(exc)
        _render_errors(errors)
        return None, _entry_form(kind, entry, 400, errors)
    # the target profile must belong to the user as well
    if not is_owned_by_user(db.session, data.profile_id, current_user().id):
        logger.warning('User %s posted %s to foreign profile %s', current_user().id, kind, data.profile_id)
        errors = {'profile_id': ['Unknown profile.']}
        _render_errors(errors)
        return None, _entry_form(kind, entry, 400, errors)
    return data, None


@bp.route(f'/{KIND_ARG}/create', methods=['GET', 'POST'])
@login_required
def create_entry(kind):
    if request.method == 'GET':
        return _entry_form(kind, None)
    data, error_response = _parse_entry(kind, None)
    if error_response:
        return error_response
    entry = LEDGER_MODELS[kind](**data.model_dump())
    if not _ledger_store(kind).save(entry):
        flash(f'Failed to create {LEDGER_MODELS[kind].kind}.', 'error')
        return _entry_form(kind, None, 500)
    flash(f'{KIND_TITLES[kind][:-1]} created.', 'success')
    return redirect(url_for('views.list_entries', kind=kind))


@bp.route(f'/{KIND_ARG}/<int:entry_id>')
@login_required
def show_entry(kind, entry_id):
    entry = owned_entry(db.session, LEDGER_MODELS[kind], entry_id, current_user().id)
    if entry is None:
        flash('Entry not found.', 'error')
        return redirect(url_for('views.list_entries', kind=kind))
    return render_template('entries/show.html', kind=kind, title=KIND_TITLES[kind], entry=entry)


@bp.route(f'/{KIND_ARG}/<int:entry_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_entry(kind, entry_id):
    entry = owned_entry(db.session, LEDGER_MODELS[kind], entry_id, current_user().id)
    if entry is None:
        flash('Entry not found.', 'error')
        return redirect(url_for('views.list_entries', kind=kind))
    if request.method == 'GET':
        return _entry_form(kind, entry)
    data, error_response = _parse_entry(kind, entry)
    if error_response:
        return error_response
    for field, value in data.model_dump().items():
        setattr(entry, field, value)
    if not _ledger_store(kind).save(entry):
        flash(f'Failed to update {LEDGER_MODELS[kind].kind}.', 'error')
        return _entry_form(kind, entry, 500)
    flash(f'{KIND_TITLES[kind][:-1]} updated.', 'success')
    return redirect(url_for('views.list_entries', kind=kind))


@bp.route(f'/{KIND_ARG}/<int:entry_id>/delete', methods=['POST'])
@login_required
def delete_entry(kind, entry_id):
    if owned_entry(db.session, LEDGER_MODELS[kind], entry_id, current_user().id) is None:
        if is_ajax():
            return jsonify({'success': False, 'message': 'Entry not found.'}), 404
        flash('Entry not found.', 'error')
        return redirect(url_for('views.list_entries', kind=kind))
    deleted = _ledger_store(kind).delete(entry_id)
    if is_ajax():
        return jsonify({'success': deleted, 'message': 'Entry deleted.' if deleted else 'Failed to delete entry.'})
    flash('Entry deleted.' if deleted else 'Failed to delete entry.', 'success' if deleted else 'error')
    return redirect(url_for('views.list_entries', kind=kind))


# ---------------------- API Endpoints ----------------------
@bp.route('/api/summary')
@login_required
def api_summary():
    user = current_user()
    balance = BalanceService(db.session)
    return jsonify({
        'income': str(balance.get_global_total_income(user.id)),
        'expense': str(balance.get_global_total_expenses(user.id)),
        'balance': str(balance.get_global_balance(user.id)),
    })


@bp.route('/api/profiles/<int:profile_id>/balance')
@login_required
def api_profile_balance(profile_id):
    profile = owned_profile(db.session, profile_id, current_user().id)
    if profile is None:
        abort(404)
    return jsonify({
        'profile_id': profile.id,
        'initial_balance': str(to_money(profile.initial_balance)),
        'assets': str(to_money(profile.assets)),
        'balance': str(BalanceService(db.session).calculate_balance(profile.id)),
    })


@bp.route(f'/api/{KIND_ARG}')
@login_required
def api_entries(kind):
    entries = _ledger_store(kind).get_all_for_user(current_user().id)
    return jsonify([entry.as_dict() for entry in entries])


@bp.route('/api/insights')
@login_required
def api_insights():
    user = current_user()
    recs = generate_recommendations(db.session, user.id)
    pred = predict_next_month_expense(db.session, user.id)
    return jsonify({'recommendations': recs, 'next_month_expense_prediction': pred})


# ---------------------- Export CSV ----------------------
@bp.route('/export.csv')
@login_required
def export_csv():
    user = current_user()
    rows = []
    for kind, model in LEDGER_MODELS.items():
        for entry in _ledger_store(kind).get_all_for_user(user.id):
            rows.append((entry, model.kind))
    rows.sort(key=lambda row: (row[0].date, row[0].id), reverse=True)
    si = io.StringIO()
    writer = csv.writer(si)
    writer.writerow(['date', 'kind', 'profile', 'amount', 'type', 'description'])
    for entry, kind in rows:
        writer.writerow([entry.date.isoformat(), kind, entry.profile.name, str(to_money(entry.amount)), entry.type, entry.description])
    output = si.getvalue().encode('utf-8')
    return (output, 200, {'Content-Type': 'text/csv; charset=utf-8', 'Content-Disposition': 'attachment; filename=ledger.csv'})

from flask import Blueprint, current_app, g, jsonify, request

from frontdesk.api.auth import login_required, requires
from frontdesk.domain import billing
from frontdesk.domain.user import Capability
from frontdesk.services.activity_logger import log_activity, ActionType
from frontdesk.services.patient_repository import get_repository

bp = Blueprint('visits', __name__, url_prefix='/visits')


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _queue_response(visits) -> dict:
    repo = get_repository()
    return {
        'visits': [v.to_dict() for v in visits],
        'snapshot_version': repo.snapshot.version,
    }


@bp.route('/today')
@requires(Capability.VIEW_QUEUE)
def today():
    """Today's queue, newest registration first; ?status= narrows it."""
    repo = get_repository()
    repo.ensure_loaded()
    status = request.args.get('status')
    visits = repo.by_status(status) if status else repo.today()
    return jsonify(_queue_response(visits)), 200


@bp.route('/stats')
@requires(Capability.VIEW_QUEUE)
def stats():
    repo = get_repository()
    repo.ensure_loaded()
    return jsonify(repo.stats()), 200


@bp.route('/refresh', methods=('POST',))
@login_required
def refresh():
    snapshot = get_repository().refresh()
    return jsonify({'snapshot_version': snapshot.version, 'count': len(snapshot.visits)}), 200


@bp.route('/<int:visit_id>')
@requires(Capability.VIEW_QUEUE)
def detail(visit_id):
    return jsonify(get_repository().get(visit_id).to_dict()), 200


@bp.route('', methods=('POST',))
@requires(Capability.REGISTER_PATIENT)
def register():
    visit = get_repository().register(_payload(), created_by=g.session.username)

    log_activity(ActionType.VISIT_REGISTER, description=f'Registered {visit.name} as {visit.token_number}',
                 visit=visit, new_value=visit.status)
    if visit.is_offline_token:
        log_activity(ActionType.OFFLINE_TOKEN, visit=visit, new_value=visit.token_number)

    body = visit.to_dict()
    body['offline_numbering'] = visit.is_offline_token
    return jsonify(body), 201


@bp.route('/<int:visit_id>/start', methods=('POST',))
@requires(Capability.START_CONSULTATION)
def start_consultation(visit_id):
    visit = get_repository().start_consultation(visit_id)
    log_activity(ActionType.CONSULTATION_START, visit=visit, old_value='waiting', new_value=visit.status)
    return jsonify(visit.to_dict()), 200


@bp.route('/<int:visit_id>/prescription', methods=('POST',))
@requires(Capability.SAVE_PRESCRIPTION)
def save_prescription(visit_id):
    repo = get_repository()
    previous = repo.get(visit_id).status
    visit = repo.save_completion(visit_id, _payload().get('prescription', ''))
    log_activity(ActionType.PRESCRIPTION_SAVE, visit=visit, old_value=previous, new_value=visit.status)
    return jsonify(visit.to_dict()), 200


@bp.route('/<int:visit_id>/bill', methods=('POST',))
@requires(Capability.GENERATE_BILL)
def generate_bill(visit_id):
    """Bill a completed visit.

    Accepts an explicit ``amount`` or the itemised ``consultation_fee``,
    ``medication_cost`` and ``additional_charges``; omitted items fall back
    to the configured defaults.
    """
    data = _payload()
    if 'amount' in data:
        amount = data['amount']
    else:
        cfg = current_app.config
        amount = billing.total(
            data.get('consultation_fee', cfg['DEFAULT_CONSULTATION_FEE']),
            data.get('medication_cost', cfg['DEFAULT_MEDICATION_COST']),
            data.get('additional_charges', cfg['DEFAULT_ADDITIONAL_CHARGES']),
            minor_units=cfg['CURRENCY_MINOR_UNITS'],
        )

    visit = get_repository().generate_bill(visit_id, amount)
    log_activity(ActionType.BILL_GENERATE, visit=visit, old_value='completed', new_value=str(visit.bill_amount))
    return jsonify(visit.to_dict()), 200

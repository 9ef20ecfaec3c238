# routes/nda.py
"""
NDA endpoints: request, complete, status, document download, cancel/void,
and the Sadiq webhook.
"""

import logging

from flask import Blueprint, request, jsonify, make_response
from flask_login import login_required, current_user

from services.esign import NdaError
from services.nda_workflow import get_workflow

logger = logging.getLogger(__name__)

nda_bp = Blueprint('nda', __name__, url_prefix='/api')


@nda_bp.errorhandler(NdaError)
def handle_nda_error(error):
    """Render workflow errors as {error, ...details} with their HTTP status."""
    if error.http_status >= 500:
        logger.error(f"NDA request failed: {error.message}")
    return jsonify(error.to_dict()), error.http_status


def _json_body():
    return request.get_json(silent=True) or {}


# =============================================================================
# LIFECYCLE
# =============================================================================

@nda_bp.route('/projects/<int:project_id>/nda/initiate', methods=['POST'])
@login_required
def initiate_nda(project_id):
    """Company requests an NDA for a project. Body: {companyRep: {name, email, phone}}"""
    result = get_workflow().initiate(current_user, project_id, _json_body().get('companyRep'))
    return jsonify(result), 201


@nda_bp.route('/nda/<int:nda_id>/complete', methods=['POST'])
@login_required
def complete_nda(nda_id):
    """Project owner supplies signer details. Body: {entrepreneur: {name, email, phone}}"""
    result = get_workflow().complete(current_user, nda_id, _json_body().get('entrepreneur'))
    return jsonify(result), 200


@nda_bp.route('/nda/<int:nda_id>/cancel', methods=['POST'])
@login_required
def cancel_nda(nda_id):
    result = get_workflow().cancel(current_user, nda_id, reason=_json_body().get('reason'))
    return jsonify(result), 200


@nda_bp.route('/nda/<int:nda_id>/void', methods=['POST'])
@login_required
def void_nda(nda_id):
    result = get_workflow().void(current_user, nda_id, reason=_json_body().get('reason'))
    return jsonify(result), 200


# =============================================================================
# READS
# =============================================================================

@nda_bp.route('/nda/<int:nda_id>')
@login_required
def get_nda(nda_id):
    """Current status; pass ?refresh=false to skip the provider poll."""
    refresh = request.args.get('refresh', 'true').lower() != 'false'
    return jsonify(get_workflow().get_status(current_user, nda_id, refresh=refresh))


@nda_bp.route('/projects/<int:project_id>/nda')
@login_required
def list_project_ndas(project_id):
    return jsonify(get_workflow().list_for_project(current_user, project_id))


@nda_bp.route('/nda/<int:nda_id>/document')
@login_required
def download_nda_document(nda_id):
    """Download the agreement PDF (provider copy, or a reconstruction)."""
    document = get_workflow().get_document(current_user, nda_id)

    response = make_response(document.content)
    response.headers['Content-Type'] = 'application/pdf'
    response.headers['Content-Disposition'] = f'attachment; filename="{document.file_name}"'
    response.headers['X-Nda-Document-Source'] = document.source
    return response


# =============================================================================
# WEBHOOK ENDPOINT
# =============================================================================

@nda_bp.route('/sadiq/webhook', methods=['POST'])
def sadiq_webhook():
    """
    Receive envelope status updates from Sadiq.

    Authenticated with the shared secret sent as a bearer token in the
    Authorization header (registered with Sadiq as the webhook HeaderToken).
    """
    payload = request.get_json(silent=True)
    result = get_workflow().handle_webhook(request.headers.get('Authorization'), payload)
    return jsonify({'received': True, **result}), 200

import logging
from flask import Flask, render_template, request, jsonify, redirect, url_for

from .config import Settings, load_settings
from .deriver import SEMESTERS, ErrorKind, DerivationError, derive_locator, locator_from_parts, locator_from_url
from .sessions import SessionRegistry
from .viewer import NEXT, PREV, RetryTimer

REG_NO_MIN_LEN = 5
REG_NO_MAX_LEN = 20

FRAME_EVENTS = ("loaded", "errored", NEXT, PREV, "cancel")


def validate_form(registration_number, semester):
    """Form-level checks, before the registration number ever reaches the deriver."""
    errors = {}
    if len(registration_number) < REG_NO_MIN_LEN:
        errors["registrationNumber"] = f"Registration number must be at least {REG_NO_MIN_LEN} characters long."
    elif len(registration_number) > REG_NO_MAX_LEN:
        errors["registrationNumber"] = "Registration number too long."
    if semester not in SEMESTERS:
        errors["semester"] = "Please select a semester."
    return errors


def error_response(kind, message, status):
    return jsonify({"error": DerivationError(kind, message).to_dict()}), status


def create_app(settings: Settings = None, timer_factory=RetryTimer) -> Flask:
    settings = settings or load_settings()

    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')

    app = Flask(__name__)
    app.config["RESULT_SETTINGS"] = settings
    sessions = SessionRegistry(
        retry_interval=settings.RETRY_INTERVAL_SEC,
        idle_timeout=settings.SESSION_IDLE_TIMEOUT_SEC,
        timer_factory=timer_factory,
    )
    app.extensions["viewer_sessions"] = sessions

    def session_payload(session_id, session):
        return dict(session.snapshot(), sessionId=session_id)

    @app.route('/', methods=['GET', 'POST'])
    def index():
        if request.method == 'GET':
            return render_template('index.html', semesters=SEMESTERS, form={}, errors={})

        reg_no = request.form.get('registrationNumber', '').strip()
        semester = request.form.get('semester', '').strip().upper()
        form = {'registrationNumber': reg_no, 'semester': semester}

        errors = validate_form(reg_no, semester)
        if not errors:
            result = derive_locator(reg_no, semester, origin=settings.RESULT_SITE_ORIGIN)
            if result.ok:
                locator = result.locator
                return redirect(url_for('result_viewer', basePath=locator.base_path,
                                        semester=locator.semester_code, regNo=locator.registration_number))
            errors[result.error.field or 'registrationNumber'] = result.error.message

        app.logger.info(f"Rejected lookup for {reg_no!r} / {semester!r}: {errors}")
        return render_template('index.html', semesters=SEMESTERS, form=form, errors=errors), 400

    @app.route('/result-viewer')
    def result_viewer():
        if request.args.get('url'):
            locator = locator_from_url(request.args.get('url'))
        else:
            locator = locator_from_parts(request.args.get('basePath'),
                                         request.args.get('semester'),
                                         request.args.get('regNo'))
        if locator is None:
            app.logger.warning(f"Viewer opened without navigation parameters: {dict(request.args)}")
            return render_template('redirect.html', target=url_for('index'),
                                   delay_ms=settings.REDIRECT_DELAY_MS)

        session_id, session = sessions.open(locator)
        return render_template('viewer.html',
                               viewer=session_payload(session_id, session),
                               poll_interval_ms=settings.POLL_INTERVAL_MS)

    @app.route('/api/locator')
    def api_locator():
        result = derive_locator(request.args.get('regNo', ''), request.args.get('semester', ''),
                                origin=settings.RESULT_SITE_ORIGIN)
        if not result.ok:
            return jsonify({"error": result.error.to_dict()}), 400
        return jsonify(dict(result.locator.to_dict(), effectiveUrl=result.locator.effective_url))

    @app.route('/api/viewer/<session_id>', methods=['GET'])
    def viewer_status(session_id):
        session = sessions.get(session_id)
        if session is None:
            return error_response(ErrorKind.MISSING_NAVIGATION_PARAMETERS, "Viewer session not found", 404)
        return jsonify(session_payload(session_id, session))

    @app.route('/api/viewer/<session_id>/events', methods=['POST'])
    def viewer_event(session_id):
        session = sessions.get(session_id)
        if session is None:
            return error_response(ErrorKind.MISSING_NAVIGATION_PARAMETERS, "Viewer session not found", 404)

        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        event = body.get('event')
        if event not in FRAME_EVENTS:
            return error_response(ErrorKind.INVALID_INPUT, f"Unknown event: {event!r}", 400)
        nonce = body.get('nonce')
        if nonce is not None and not isinstance(nonce, int):
            return error_response(ErrorKind.INVALID_INPUT, "nonce must be an integer", 400)

        if event == 'loaded':
            session.frame_loaded(nonce)
        elif event == 'errored':
            session.frame_errored(nonce)
            app.logger.info(f"Session {session_id}: {ErrorKind.FRAME_LOAD_FAILURE.value}")
        elif event == 'cancel':
            session.cancel_retry()
        elif not session.step(event):
            app.logger.info(f"Session {session_id}: {event} ignored, no trailing number")
        return jsonify(session_payload(session_id, session))

    @app.route('/api/viewer/<session_id>/close', methods=['POST'])
    def viewer_close(session_id):
        sessions.close(session_id)
        return '', 204

    @app.route('/health')
    def health():
        sessions.sweep()
        return jsonify({"status": "ok", "sessions": len(sessions)})

    return app

"""
HTTP API - Smart City Lab Admin Dashboard

JSON endpoints of the dashboard. Everything under ``/api/admin`` requires a
Firebase ID token of an admin user in the ``Authorization: Bearer`` header.

Features:
- Student account creation, CSV bulk upload and password resets
- Student listing, filtering, updates and exports
- QR code generation and QR scan attendance sessions
- Paper attendance from uploaded sheets
- Rankings, dashboard statistics and reports
- Teams, task scores, mentors and syllabus
- Announcements, messages and registration review
- Data management, system health and activity logs
"""

import io
import logging
from functools import wraps

from flask import Blueprint, current_app, g, jsonify, request, send_file
from werkzeug.utils import secure_filename

from smartlab.modules.activity_logger import LOG_ACTIONS
from smartlab.modules.attendance_manager import ATTENDANCE_COLLECTION
from smartlab.modules.auth_manager import AuthorizationError

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

CSV_EXTENSIONS = {'csv'}


def manager(name):
    """Get a manager registered by the application factory"""
    return current_app.extensions['smartlab'][name]


def audit(action, message, metadata=None):
    admin = getattr(g, 'admin', None) or {}
    manager('activity').write_log(
        LOG_ACTIONS[action], message,
        uid=admin.get('uid'), email=admin.get('email'), role=admin.get('role'),
        page=request.path, metadata=metadata
    )


def admin_required(f):
    """Decorator to require an admin bearer token for API routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.admin = manager('auth').verify_admin_request(request.headers.get('Authorization'))
        except AuthorizationError as e:
            # Only verified callers are written to the audit log
            if e.status_code == 403:
                g.admin = e.caller
                audit('PERMISSION_DENIED', e.message, {'status': e.status_code})
            else:
                logger.warning(f"Rejected request to {request.path}: {e.message}")
            return jsonify({'success': False, 'error': e.message}), e.status_code
        return f(*args, **kwargs)
    return decorated_function


def json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def result_response(result, success_status=200, failure_status=400):
    """Translate a manager result dict into a JSON response"""
    return jsonify(result), (success_status if result.get('success') else failure_status)


def file_response(result):
    if not result.get('success'):
        return jsonify(result), 500
    return send_file(
        io.BytesIO(result['content']),
        mimetype=result['mimetype'],
        as_attachment=True,
        download_name=result['filename']
    )


def allowed_file(filename, extensions):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in extensions


@api.route('/health')
def health():
    """Read-only health check"""
    status = manager('monitor').check_connection()
    return jsonify({'success': True, 'status': 'ok', 'firestore': status['connected']})


# Student accounts

@api.route('/admin/createStudent', methods=['POST'])
@admin_required
def create_student():
    """Create a single student account"""
    try:
        result = manager('students').create_student(json_body())
        status = result.pop('status', 200 if result.get('success') else 400)

        if result.get('success'):
            audit('STUDENT_CREATED', f"Student created: {result['rollNo']}", {'uid': result['uid']})

        return jsonify(result), status

    except Exception as e:
        logger.error(f"Create student error: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@api.route('/admin/bulkUploadCSV', methods=['POST'])
@admin_required
def bulk_upload_csv():
    """Create student accounts from a JSON ``students`` list or an uploaded CSV file"""
    students = manager('students')

    try:
        if 'file' in request.files:
            upload = request.files['file']
            filename = secure_filename(upload.filename or '')
            if not filename or not allowed_file(filename, CSV_EXTENSIONS):
                return jsonify({'success': False, 'error': 'Please upload a .csv file'}), 400

            audit('CSV_UPLOAD_START', f"CSV upload started: {filename}")
            result = students.import_students_from_csv(upload.read().decode('utf-8-sig'))
        else:
            rows = json_body().get('students')
            if not isinstance(rows, list) or not rows:
                return jsonify({'success': False, 'error': 'No student data provided'}), 400
            if not all(isinstance(row, dict) for row in rows):
                return jsonify({'success': False, 'error': 'Each student must be an object'}), 400

            audit('CSV_UPLOAD_START', f"Bulk upload started: {len(rows)} rows")
            result = students.bulk_create_students(rows)

        if not result.get('success'):
            audit('CSV_UPLOAD_FAILED', result.get('error', 'Bulk upload failed'))
            return jsonify(result), 400

        audit('CSV_UPLOAD_SUCCESS',
              f"Bulk upload completed: {result['successful']}/{result['totalProcessed']} created",
              {'successful': result['successful'], 'failed': result['failed']})
        return jsonify(result)

    except Exception as e:
        logger.error(f"Bulk upload error: {str(e)}")
        audit('CSV_UPLOAD_FAILED', str(e))
        return jsonify({'success': False, 'error': str(e)}), 500


@api.route('/admin/resetStudentPassword', methods=['POST'])
@admin_required
def reset_student_password():
    data = json_body()
    email = data.get('email')
    new_password = data.get('newPassword') or data.get('password')

    if not email or not new_password:
        return jsonify({'success': False, 'error': 'Missing email or password'}), 400

    result = manager('auth').reset_password(email, new_password)
    return result_response(result, failure_status=500)


@api.route('/admin/students')
@admin_required
def list_students():
    """List students with optional search, year and backlog filters"""
    students = manager('students')
    all_students = students.get_all_students()
    filtered = students.filter_students(
        all_students,
        query=request.args.get('q', '').strip(),
        year=request.args.get('year', ''),
        backlogs=request.args.get('backlogs', '')
    )
    return jsonify({
        'success': True,
        'students': filtered,
        'total': len(all_students),
        'filters': students.get_filter_options(all_students)
    })


@api.route('/admin/students/export')
@admin_required
def export_students():
    output_format = request.args.get('format', 'csv')
    if output_format not in ('csv', 'excel'):
        return jsonify({'success': False, 'error': f'Unsupported output format: {output_format}'}), 400
    result = manager('reports').export_students(manager('students').get_all_students(), output_format)
    return file_response(result)


@api.route('/admin/students/sync-passwords', methods=['POST'])
@admin_required
def sync_student_passwords():
    """Push stored student passwords to their Firebase Auth accounts"""
    results = manager('students').sync_passwords()
    return jsonify(dict(results, success=results['failed'] == 0))


@api.route('/admin/students/<uid>')
@admin_required
def get_student(uid):
    student = manager('students').get_student(uid)
    if not student:
        return jsonify({'success': False, 'error': 'Student not found'}), 404
    return jsonify({'success': True, 'student': student})


@api.route('/admin/students/<uid>', methods=['PUT'])
@admin_required
def update_student(uid):
    result = manager('students').update_student(uid, json_body())
    return result_response(result, failure_status=404 if result.get('error') == 'Student not found' else 400)


@api.route('/admin/students/<uid>', methods=['DELETE'])
@admin_required
def delete_student(uid):
    if not manager('students').delete_student(uid):
        return jsonify({'success': False, 'error': 'Student not found'}), 404
    return jsonify({'success': True, 'message': 'Student deleted successfully'})


# QR codes

@api.route('/admin/qr', methods=['POST'])
@admin_required
def generate_qr():
    """Generate the QR code of one student"""
    data = json_body()
    result = manager('qr').generate_student_qr_code(
        str(data.get('rollNo') or '').strip(),
        data.get('name', ''),
        with_caption=bool(data.get('caption'))
    )
    return result_response(result)


@api.route('/admin/qr/batch', methods=['POST'])
@admin_required
def generate_qr_batch():
    """Generate QR codes for the given students, or every student"""
    data = json_body()
    students = data.get('students')
    if students is None:
        students = manager('students').get_all_students()
    result = manager('qr').batch_generate_qr_codes(students, with_caption=bool(data.get('caption')))
    return jsonify(result)


# QR scan attendance

@api.route('/admin/attendance/scan', methods=['POST'])
@admin_required
def scan_attendance():
    """Process a scanned QR code for the caller's scan session"""
    qr_text = json_body().get('qrText')
    if not qr_text:
        return jsonify({'success': False, 'result': 'invalid', 'error': 'No QR code data provided'}), 400

    outcome = manager('attendance').process_scan(g.admin['uid'], qr_text)
    status = 400 if outcome['result'] == 'invalid' else 404 if outcome['result'] == 'not_found' else 200
    return jsonify(outcome), status


@api.route('/admin/attendance/session')
@admin_required
def get_scan_session():
    state = manager('attendance').session_state(g.admin['uid'], request.args.get('search', '').strip())
    return jsonify(dict(state, success=True))


@api.route('/admin/attendance/session', methods=['DELETE'])
@admin_required
def close_scan_session():
    manager('attendance').close_session(g.admin['uid'])
    return jsonify({'success': True})


@api.route('/admin/attendance/session/records/<int:record_id>/absent', methods=['POST'])
@admin_required
def mark_scan_absent(record_id):
    state = manager('attendance').mark_absent(g.admin['uid'], record_id)
    if state is None:
        return jsonify({'success': False, 'error': 'Record not found'}), 404
    return jsonify(dict(state, success=True))


@api.route('/admin/attendance/session/records/<int:record_id>', methods=['DELETE'])
@admin_required
def remove_scan_record(record_id):
    state = manager('attendance').remove_record(g.admin['uid'], record_id)
    if state is None:
        return jsonify({'success': False, 'error': 'Record not found'}), 404
    return jsonify(dict(state, success=True))


@api.route('/admin/attendance/submit', methods=['POST'])
@admin_required
def submit_attendance():
    """Store the caller's scan session as the day's attendance"""
    result = manager('attendance').submit_attendance(
        g.admin['uid'],
        submitted_by=g.admin.get('name') or g.admin.get('email'),
        date=json_body().get('date')
    )
    if result.get('success'):
        audit('ATTENDANCE_MARKED', f"Attendance submitted for {result['date']}",
              {'present': len(result['present']), 'absent': len(result['absent'])})
    return result_response(result, failure_status=500)


@api.route('/admin/attendance/today')
@admin_required
def today_attendance():
    record = manager('attendance').get_today_attendance(request.args.get('date'))
    return jsonify({'success': True, 'attendance': record})


@api.route('/admin/attendance/records')
@admin_required
def list_attendance_records():
    return jsonify({'success': True, 'records': manager('attendance').list_attendance_records()})


@api.route('/admin/attendance/records/<record_id>', methods=['DELETE'])
@admin_required
def delete_attendance_record(record_id):
    if not manager('attendance').delete_attendance_record(record_id):
        return jsonify({'success': False, 'error': 'Attendance record not found'}), 404
    return jsonify({'success': True, 'message': 'Attendance record deleted'})


@api.route('/admin/attendance/records/<record_id>/report')
@admin_required
def attendance_record_report(record_id):
    """Download one attendance record as CSV text, PDF or Excel"""
    record = manager('db').get_document(ATTENDANCE_COLLECTION, record_id)
    if not record:
        return jsonify({'success': False, 'error': 'Attendance record not found'}), 404

    reports = manager('reports')
    output_format = request.args.get('format', 'csv')
    if output_format == 'pdf':
        return file_response(reports.generate_daily_report_pdf(record))
    if output_format == 'excel':
        return file_response(reports.export_paper_attendance(record))
    if output_format == 'csv':
        return file_response(reports.export_daily_report(record))
    return jsonify({'success': False, 'error': f'Unsupported output format: {output_format}'}), 400


# Paper attendance

@api.route('/admin/attendance/paper/upload', methods=['POST'])
@admin_required
def upload_paper_roster():
    """Read the roster of an uploaded attendance sheet"""
    upload = request.files.get('file')
    filename = secure_filename(upload.filename or '') if upload else ''
    if not filename or not allowed_file(filename, current_app.config['ALLOWED_UPLOAD_EXTENSIONS']):
        return jsonify({'success': False, 'error': 'Please upload an .xlsx, .xls or .csv file'}), 400

    attendance = manager('attendance')
    result = attendance.load_paper_roster(io.BytesIO(upload.read()), filename)
    if not result.get('success'):
        return jsonify(result), 400

    result['filters'] = attendance.get_paper_filter_options(result['students'])
    return jsonify(result)


@api.route('/admin/attendance/paper/submit', methods=['POST'])
@admin_required
def submit_paper_attendance():
    data = json_body()
    attendance = manager('attendance')
    filters = data.get('filters') or {}
    students = attendance.filter_paper_roster(
        data.get('students') or [],
        year=filters.get('year', ''),
        branch=filters.get('branch', ''),
        section=filters.get('section', ''),
        search=filters.get('search', '')
    )

    result = attendance.submit_paper_attendance(students, data.get('presentIds') or [], data.get('date'))
    if result.get('success'):
        audit('ATTENDANCE_MARKED', f"Paper attendance submitted for {result['record']['date']}")
    return result_response(result, failure_status=409 if result.get('error', '').startswith('Attendance already') else 400)


# Rankings, statistics and reports

@api.route('/admin/rankings')
@admin_required
def rankings():
    return jsonify(dict(manager('rankings').get_rankings_overview(), success=True))


@api.route('/admin/dashboard')
@admin_required
def dashboard():
    """Summary statistics shown on the dashboard home"""
    return jsonify({'success': True, 'stats': manager('rankings').get_dashboard_statistics()})


@api.route('/admin/statistics')
@admin_required
def student_statistics():
    return jsonify({
        'success': True,
        'students': manager('rankings').get_student_statistics(),
        'marks': manager('reports').get_marks()
    })


@api.route('/admin/reports/students')
@admin_required
def student_report():
    """Download the attendance & marks report"""
    reports = manager('reports')
    result = reports.export_student_statistics(
        manager('rankings').get_student_statistics(),
        reports.get_marks(),
        output_format=request.args.get('format', 'csv')
    )
    if not result.get('success') and result.get('error', '').startswith('Unsupported'):
        return jsonify(result), 400
    return file_response(result)


@api.route('/admin/marks')
@admin_required
def get_marks():
    return jsonify({'success': True, 'marks': manager('reports').get_marks()})


@api.route('/admin/marks', methods=['PUT'])
@admin_required
def save_marks():
    marks = json_body().get('marks')
    if not isinstance(marks, dict):
        return jsonify({'success': False, 'error': 'Marks must be an object keyed by roll number'}), 400
    return result_response(manager('reports').save_marks(marks), failure_status=500)


# Teams and task scores

@api.route('/admin/teams')
@admin_required
def list_teams():
    return jsonify({'success': True, 'teams': manager('teams').get_teams()})


@api.route('/admin/teams', methods=['POST'])
@admin_required
def create_team():
    data = json_body()
    result = manager('teams').create_team(
        str(data.get('teamName') or '').strip(),
        data.get('leaderRollNo'),
        data.get('members')
    )
    return result_response(result, success_status=201)


@api.route('/admin/teams/<team_id>', methods=['DELETE'])
@admin_required
def delete_team(team_id):
    if not manager('teams').delete_team(team_id):
        return jsonify({'success': False, 'error': 'Team not found'}), 404
    return jsonify({'success': True, 'message': 'Team deleted successfully'})


@api.route('/admin/scores')
@admin_required
def list_scores():
    teams = manager('teams')
    scores = teams.get_task_scores()
    return jsonify({'success': True, 'scores': scores, 'byTeam': teams.group_scores_by_team(scores)})


@api.route('/admin/scores', methods=['POST'])
@admin_required
def add_score():
    return result_response(manager('teams').add_task_score(json_body()), success_status=201)


@api.route('/admin/scores/<score_id>', methods=['PUT'])
@admin_required
def update_score(score_id):
    result = manager('teams').update_task_score(score_id, json_body())
    return result_response(result, failure_status=404 if result.get('error') == 'Task score not found' else 400)


@api.route('/admin/scores/<score_id>', methods=['DELETE'])
@admin_required
def delete_score(score_id):
    if not manager('teams').delete_task_score(score_id):
        return jsonify({'success': False, 'error': 'Task score not found'}), 404
    return jsonify({'success': True})


# Mentors

@api.route('/admin/mentors')
@admin_required
def list_mentors():
    mentors = manager('mentors')
    found = mentors.search_mentors(mentors.get_mentors(), request.args.get('search', ''))
    return jsonify({'success': True, 'mentors': found})


@api.route('/admin/mentors', methods=['POST'])
@admin_required
def create_mentor():
    return result_response(manager('mentors').create_mentor(json_body()), success_status=201)


@api.route('/admin/mentors/<mentor_id>', methods=['PUT'])
@admin_required
def update_mentor(mentor_id):
    result = manager('mentors').update_mentor(mentor_id, json_body())
    return result_response(result, failure_status=404 if result.get('error') == 'Mentor not found' else 400)


@api.route('/admin/mentors/<mentor_id>', methods=['DELETE'])
@admin_required
def delete_mentor(mentor_id):
    if not manager('mentors').delete_mentor(mentor_id):
        return jsonify({'success': False, 'error': 'Mentor not found'}), 404
    return jsonify({'success': True})


# Syllabus

@api.route('/admin/syllabus')
@admin_required
def get_syllabus():
    return jsonify({'success': True, 'rows': manager('syllabus').get_syllabus()})


@api.route('/admin/syllabus', methods=['PUT'])
@admin_required
def save_syllabus():
    rows = json_body().get('rows')
    if not isinstance(rows, list):
        return jsonify({'success': False, 'error': 'rows must be a list'}), 400
    return result_response(manager('syllabus').save_syllabus(rows, g.admin['uid']))


@api.route('/admin/syllabus/share', methods=['POST'])
@admin_required
def share_syllabus():
    data = json_body()
    result = manager('syllabus').create_share(data.get('rows'), data.get('title'))
    return result_response(result, success_status=201, failure_status=500)


@api.route('/syllabus/shared/<path:share_code>')
def shared_syllabus(share_code):
    """Public read-only view of a shared schedule"""
    share = manager('syllabus').get_share(share_code)
    if share is None:
        return jsonify({'success': False, 'error': 'Schedule not found'}), 404
    return jsonify(dict(share, success=True))


# Announcements and messages

@api.route('/admin/announcements')
@admin_required
def list_announcements():
    return jsonify({'success': True, 'announcements': manager('notifications').get_announcements()})


@api.route('/admin/announcements', methods=['POST'])
@admin_required
def post_announcement():
    data = json_body()
    result = manager('notifications').post_announcement(
        data.get('title', ''), data.get('message', ''), g.admin.get('email')
    )
    return result_response(result, success_status=201)


@api.route('/admin/announcements/send', methods=['POST'])
@admin_required
def send_announcement():
    """Store an announcement and deliver it to student inboxes"""
    data = json_body()
    if not data.get('title') or not data.get('message'):
        return jsonify({'success': False, 'error': 'Title and message are required'}), 400
    result = manager('notifications').send_announcement(
        data['title'], data['message'],
        target_audience=data.get('targetAudience', 'all'),
        target_group_id=data.get('targetGroupId')
    )
    return result_response(result, success_status=201, failure_status=500)


@api.route('/admin/announcements/<announcement_id>', methods=['DELETE'])
@admin_required
def delete_announcement(announcement_id):
    if not manager('notifications').delete_announcement(announcement_id):
        return jsonify({'success': False, 'error': 'Announcement not found'}), 404
    return jsonify({'success': True})


@api.route('/admin/users/<uid>/messages')
@admin_required
def list_messages(uid):
    return jsonify({'success': True, 'messages': manager('notifications').get_student_messages(uid)})


@api.route('/admin/users/<uid>/messages', methods=['POST'])
@admin_required
def send_message(uid):
    data = json_body()
    try:
        message_id = manager('notifications').create_system_message(
            uid, data.get('title', ''), data.get('message', ''), data.get('type', 'announcement')
        )
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    return jsonify({'success': True, 'messageId': message_id}), 201


# Registration

@api.route('/admin/registration')
@admin_required
def registration_status():
    return jsonify({'success': True, 'active': manager('notifications').get_registration_status()})


@api.route('/admin/registration', methods=['PUT'])
@admin_required
def toggle_registration():
    active = bool(json_body().get('active'))
    if not manager('notifications').toggle_registration_status(active):
        return jsonify({'success': False, 'error': 'Failed to update registration status'}), 500
    audit('SETTINGS_CHANGED', f"Registration {'opened' if active else 'closed'}")
    return jsonify({'success': True, 'active': active})


@api.route('/admin/registration/requests')
@admin_required
def registration_requests():
    notifications = manager('notifications')
    if request.args.get('status') == 'pending':
        found = notifications.get_pending_requests()
    else:
        found = notifications.get_registration_requests()
    return jsonify({'success': True, 'requests': found})


@api.route('/admin/registration/requests/<request_id>/approve', methods=['POST'])
@admin_required
def approve_registration(request_id):
    return result_response(manager('notifications').approve_student(request_id, json_body()))


@api.route('/admin/registration/requests/<request_id>/reject', methods=['POST'])
@admin_required
def reject_registration(request_id):
    data = json_body()
    if not data.get('uid'):
        return jsonify({'success': False, 'error': 'Missing uid'}), 400
    return result_response(
        manager('notifications').reject_student(request_id, data['uid'], data.get('reason')),
        failure_status=500
    )


# Data management

@api.route('/admin/data/stats')
@admin_required
def collection_stats():
    return jsonify(dict(manager('monitor').get_collection_stats(), success=True))


@api.route('/admin/data/storage')
@admin_required
def storage_usage():
    return jsonify(dict(manager('monitor').get_storage_usage(), success=True))


@api.route('/admin/data/collections/<name>', methods=['DELETE'])
@admin_required
def clear_collection(name):
    """Delete every document of a monitored collection"""
    result = manager('monitor').clear_collection(name)
    if result.get('success'):
        audit('SETTINGS_CHANGED', f"Collection cleared: {name}", {'deleted': result['deleted']})
    return result_response(result)


@api.route('/admin/system/health', methods=['POST'])
@admin_required
def refresh_system_health():
    """Write the heartbeat document and confirm it can be read back"""
    status = manager('monitor').update_system_health()
    return jsonify({'success': status['connected'], 'firestore': status['connected']})


@api.route('/admin/logs')
@admin_required
def recent_logs():
    limit = request.args.get('limit', current_app.config['RECENT_LOGS_COUNT'], type=int)
    return jsonify({'success': True, 'logs': manager('activity').get_recent_logs(max(1, limit))})


@api.route('/admin/logs', methods=['DELETE'])
@admin_required
def clear_logs():
    result = manager('activity').clear_logs()
    return result_response(result, failure_status=500)

"""
API routes for students
Registry management and descriptor enrollment
"""
from flask import Blueprint, current_app, jsonify, request

from app.globals import get_db, get_session_loop
from app.utils import get_request_data, parse_bool, serialize_student_record
from core.descriptors import DescriptorError
from core.enrollment import EnrollmentError, capture_samples, enroll_student
from core.session import STATE_PROCESSING, STATE_SCANNING
from logging_config import recognition_logger

student_api_bp = Blueprint('student_api', __name__, url_prefix='/api/students')


def refresh_session_registry():
    """Let a running session pick up descriptor changes on its next tick."""
    loop = get_session_loop()
    if loop.config is not None:
        loop.reload_registry()


@student_api_bp.route('', methods=['GET'])
def get_students():
    """List registered students."""
    try:
        students = get_db().list_students()
        return jsonify({'success': True, 'data': [serialize_student_record(s) for s in students]})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('', methods=['POST'])
def create_student():
    """Create a student without a descriptor."""
    try:
        data = get_request_data()
        student_id = str(data.get('student_id') or '').strip()
        full_name = str(data.get('full_name') or '').strip()
        email = str(data.get('email') or '').strip() or None

        if not student_id or not full_name:
            return jsonify({'success': False, 'message': 'student_id and full_name are required'}), 400

        db = get_db()
        if not db.add_student(student_id, full_name, email):
            return jsonify({'success': False, 'message': f'Student {student_id} already exists'}), 409

        return jsonify({
            'success': True,
            'message': 'Student created',
            'student': serialize_student_record(db.get_student(student_id)),
        }), 201
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('/<student_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_student(student_id):
    """GET/PUT/DELETE a single student."""
    try:
        db = get_db()
        student = db.get_student(student_id)
        if not student:
            return jsonify({'success': False, 'message': 'Student not found'}), 404

        if request.method == 'GET':
            return jsonify({'success': True, 'student': serialize_student_record(student)})

        if request.method == 'PUT':
            data = get_request_data()
            full_name = data.get('full_name')
            if full_name is not None:
                full_name = str(full_name).strip()
                if not full_name:
                    return jsonify({'success': False, 'message': 'full_name cannot be empty'}), 400
            email = data.get('email')
            if email is not None:
                email = str(email).strip()

            db.update_student(student_id, full_name=full_name, email=email)
            return jsonify({
                'success': True,
                'message': 'Student updated',
                'student': serialize_student_record(db.get_student(student_id)),
            })

        db.delete_student(student_id)
        if student.get('has_descriptor'):
            refresh_session_registry()
        return jsonify({'success': True, 'message': 'Student deleted'})

    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500


@student_api_bp.route('/<student_id>/descriptor', methods=['POST'])
def enroll_descriptor(student_id):
    """
    Attach a reference descriptor.

    Body (JSON), one of:
        {"samples": [[...], ...]}  per-frame descriptors, averaged server-side
        {"descriptor": [...]}      an already aggregated descriptor
        {"capture": true}          capture samples from the server camera
    """
    db = get_db()
    if not db.get_student(student_id):
        return jsonify({'success': False, 'message': 'Student not found'}), 404

    data = get_request_data()
    descriptor_length = current_app.config['DESCRIPTOR_LENGTH']
    min_samples = current_app.config['ENROLLMENT_MIN_SAMPLES']

    try:
        if parse_bool(data.get('capture'), default=False):
            loop = get_session_loop()
            if loop.state in (STATE_SCANNING, STATE_PROCESSING):
                return jsonify({'success': False, 'message': 'Stop the session before capturing samples'}), 409
            services = current_app.extensions['attendance']
            count = current_app.config['ENROLLMENT_SAMPLES']
            min_samples = min(count, current_app.config['ENROLLMENT_CAPTURE_MIN_SAMPLES'])
            try:
                samples = capture_samples(
                    services['frame_source'],
                    services['oracle'],
                    count=count,
                    interval=current_app.config['ENROLLMENT_INTERVAL_MS'] / 1000.0,
                    max_attempts=current_app.config['ENROLLMENT_MAX_ATTEMPTS'],
                    descriptor_length=descriptor_length,
                )
            finally:
                services['frame_source'].stop()
        elif data.get('samples') is not None:
            samples = data.get('samples')
            if not isinstance(samples, list):
                return jsonify({'success': False, 'message': 'samples must be a list of descriptors'}), 400
        elif data.get('descriptor') is not None:
            samples = [data.get('descriptor')]
            min_samples = 1
        else:
            return jsonify({'success': False, 'message': 'Provide samples, descriptor or capture'}), 400

        descriptor = enroll_student(
            db,
            student_id,
            samples,
            min_samples=min_samples,
            descriptor_length=descriptor_length,
        )
    except DescriptorError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except EnrollmentError as e:
        return jsonify({'success': False, 'message': str(e)}), 404
    except Exception as e:
        recognition_logger.log_recognition_error(f"Enrollment of {student_id} failed: {e}")
        return jsonify({'success': False, 'message': str(e)}), 500

    recognition_logger.log_enrollment(student_id, len(samples))
    refresh_session_registry()
    return jsonify({
        'success': True,
        'message': 'Descriptor stored',
        'student_id': student_id,
        'sample_count': len(samples),
        'descriptor_length': int(descriptor.size),
    })


@student_api_bp.route('/<student_id>/descriptor', methods=['DELETE'])
def clear_descriptor(student_id):
    try:
        if not get_db().clear_student_descriptor(student_id):
            return jsonify({'success': False, 'message': 'Student not found'}), 404
        refresh_session_registry()
        return jsonify({'success': True, 'message': 'Descriptor removed'})
    except Exception as e:
        return jsonify({'success': False, 'message': str(e)}), 500

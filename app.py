import base64
import bcrypt
import hashlib
import hmac
import os
from dotenv import load_dotenv

load_dotenv()
import certifi
import pandas as pd
import re
import requests
import secrets
import smtplib
import string
import sys
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from datetime import datetime, timedelta, timezone
import pytz
from flask import Flask, request, jsonify, send_file, session, url_for, Response
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from pymongo import MongoClient, ReturnDocument, ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, ConnectionFailure, PyMongoError
from gridfs import GridFS
from bson import ObjectId
from bson.errors import InvalidId
from io import BytesIO
from functools import wraps
from docx import Document
from docx.shared import Pt, RGBColor
from docx.enum.text import WD_ALIGN_PARAGRAPH

import autofill
import cv_builder
from record_specs import (
    LOOKUP_SEED, FACULTY_SEED, USER_TYPES, TEACHER_RECORDS, PROFILE_RECORDS, TEACHER_INFO_FIELDS,
    DEPARTMENT_RECORDS, DEPARTMENT_PROFILE_FIELDS, validate_record, record_year, to_iso_date, is_blank,
)

# Fix Unicode encoding for Windows console
if sys.platform == 'win32' and hasattr(sys.stdout, 'reconfigure'):
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')

# --- App Initialization ---
app = Flask(__name__)
SECRET_KEY = os.getenv('SECRET_KEY')
if not SECRET_KEY:
    raise RuntimeError("❌ SECRET_KEY not set in environment variables. Application cannot start.")
app.secret_key = SECRET_KEY

# Session configuration (3 hour sessions)
SESSION_HOURS = 3
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=SESSION_HOURS)
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SECURE'] = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
app.config['MAX_CONTENT_LENGTH'] = 5 * 1024 * 1024

FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000').rstrip('/')

# CORS and TLS configuration
os.environ.setdefault('SSL_CERT_FILE', certifi.where())
CORS(app, resources={r"/api/*": {
    "origins": [
        r"^https?://localhost(:\d+)?$",
        r"^https?://127\.0\.0\.1(:\d+)?$",
        FRONTEND_URL,
    ],
    "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    "allow_headers": ["Content-Type", "Authorization"],
    "supports_credentials": True
}})

limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)


def _cache_headers(response):
    ct = response.headers.get('Content-Type', '')
    if 'text/html' in ct:
        response.headers['Cache-Control'] = 'no-store'
    return response
app.after_request(_cache_headers)


def cache_response(response, seconds):
    """Mark a response as cacheable by shared caches for `seconds`."""
    response.headers['Cache-Control'] = f'public, s-maxage={seconds}, stale-while-revalidate={seconds * 2}'
    return response


@app.errorhandler(404)
def handle_404(e):
    return jsonify({"success": False, "error": "Not Found"}), 404


@app.errorhandler(405)
def handle_405(e):
    return jsonify({"success": False, "error": "Method Not Allowed"}), 405


@app.errorhandler(413)
def handle_413(e):
    return jsonify({"success": False, "error": "Uploaded file is too large"}), 413


@app.errorhandler(429)
def handle_429(e):
    return jsonify({"success": False, "error": "Too many requests, try again later"}), 429


@app.errorhandler(500)
def handle_500(e):
    return jsonify({"success": False, "error": "Internal Server Error"}), 500


@app.route('/healthz', methods=['GET'])
def healthz():
    return "ok", 200

# --- Configuration ---
MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017')
DB_NAME = os.getenv('DB_NAME', 'AnnualReportDB')
IST = pytz.timezone('Asia/Kolkata')

# --- Database Connection ---
# No network traffic until the first operation; bootstrap_database() verifies the connection.
client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=5000, connect=False)
db = client[DB_NAME]

# --- SMTP Configuration ---
SMTP_SERVER = os.getenv('SMTP_SERVER', 'smtp.gmail.com')
SMTP_PORT = int(os.getenv('SMTP_PORT', '587'))
SMTP_EMAIL = os.getenv('SMTP_EMAIL')
SMTP_PASSWORD = os.getenv('SMTP_PASSWORD')
MAIL_SENDER_NAME = os.getenv('MAIL_SENDER_NAME', 'MSU Baroda')

# --- Document extraction service ---
EXTRACTION_API_URL = os.getenv('EXTRACTION_API_URL', 'http://localhost:8000/api').rstrip('/')
EXTRACTION_TIMEOUT = 60

OTP_VALID_MINUTES = 2
RESET_TOKEN_MAX_AGE = 5 * 60
SIGNED_URL_MAX_AGE = 10 * 60
MIN_PASSWORD_LENGTH = 8


def ensure_indexes():
    db.users.create_index("email", unique=True)
    db.user_types.create_index("name", unique=True)
    db.lookups.create_index([("category", ASCENDING), ("id", ASCENDING)], unique=True)
    db.faculties.create_index("Fid", unique=True)
    db.departments.create_index("Deptid", unique=True)
    db.teachers.create_index("Tid", unique=True)
    db.dept_profiles.create_index([("deptid", ASCENDING), ("year", ASCENDING)], unique=True)
    db.activity_logs.create_index([("created_at", DESCENDING)])
    db.otps.create_index([("email", ASCENDING), ("purpose", ASCENDING)])
    for spec in list(TEACHER_RECORDS.values()) + list(PROFILE_RECORDS.values()):
        db[spec['collection']].create_index("id", unique=True)
        db[spec['collection']].create_index("teacher_id")
    for spec in DEPARTMENT_RECORDS.values():
        db[spec['collection']].create_index("id", unique=True)
        db[spec['collection']].create_index(spec['dept_key'])


def seed_reference_data():
    """Insert missing lookup values, faculties, departments and user types."""
    for category, names in LOOKUP_SEED.items():
        if db.lookups.count_documents({"category": category}) == 0:
            db.lookups.insert_many([
                {"category": category, "id": i, "name": name, "active": True}
                for i, name in enumerate(names, start=1)
            ])

    for faculty in FACULTY_SEED:
        db.faculties.update_one(
            {"Fid": faculty["Fid"]},
            {"$setOnInsert": {"Fid": faculty["Fid"], "Fname": faculty["Fname"]}},
            upsert=True
        )
        for i, dept_name in enumerate(faculty["departments"], start=1):
            dept_id = faculty["Fid"] * 100 + i
            db.departments.update_one(
                {"Deptid": dept_id},
                {"$setOnInsert": {"Deptid": dept_id, "name": dept_name, "Fid": faculty["Fid"]}},
                upsert=True
            )

    for i, name in enumerate(USER_TYPES, start=1):
        db.user_types.update_one({"name": name}, {"$setOnInsert": {"id": i, "name": name}}, upsert=True)


def seed_admin():
    admin_email = (os.getenv('ADMIN_EMAIL') or '').strip().lower()
    admin_password = os.getenv('ADMIN_PASSWORD')

    if not admin_email or not admin_password:
        print("⚠️ ADMIN credentials not set in environment variables. Admin user creation skipped.")
        return

    existing = db.users.find_one({"email": admin_email})
    if not existing:
        db.users.insert_one({
            "email": admin_email,
            "password": hash_password(admin_password),
            "user_type": "admin",
            "display_name": "Administrator",
            "active": True,
            "created_at": datetime.now(timezone.utc)
        })
        print(f"✅ Created admin: {admin_email}")
    elif not verify_password(admin_password, existing.get('password')):
        db.users.update_one(
            {"_id": existing['_id']},
            {"$set": {"password": hash_password(admin_password), "user_type": "admin", "active": True}}
        )
        print(f"🔁 Admin password updated for: {admin_email}")


def bootstrap_database():
    """Verify the connection, create indexes and seed reference data."""
    try:
        client.admin.command('ping')
        print("✅ Successfully connected to MongoDB!")
        ensure_indexes()
        seed_reference_data()
        seed_admin()
        return True
    except ConnectionFailure as e:
        print(f"❌ DATABASE ERROR: Could not connect to MongoDB. Full error: {e}")
        return False


@app.cli.command('init-db')
def init_db_command():
    """Create indexes and seed lookup tables."""
    if not bootstrap_database():
        sys.exit(1)

# --- Utility Functions ---
def convert_objectid_to_str(obj):
    """Recursively convert ObjectId instances to strings for JSON serialization."""
    if isinstance(obj, ObjectId):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: convert_objectid_to_str(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_objectid_to_str(item) for item in obj]
    elif isinstance(obj, datetime):
        return obj.isoformat()
    else:
        return obj


def serialize_record(doc, id_key=None):
    record = {k: v for k, v in doc.items() if k != '_id'}
    if id_key and 'id' in record:
        record.setdefault(id_key, record['id'])
    return convert_objectid_to_str(record)


def error_response(message, status=400):
    return jsonify({"success": False, "error": message}), status


def db_error_response(e, action):
    """Map a persistence failure onto the JSON error envelope."""
    if isinstance(e, DuplicateKeyError):
        return error_response("Duplicate entry: a record with these details already exists", 409)
    if isinstance(e, ConnectionFailure):
        print(f"❌ Database connection failed while trying to {action}: {e}")
        return error_response("Database connection failed", 503)
    print(f"❌ Error trying to {action}: {e}")
    return error_response(f"Failed to {action}", 500)


def get_json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_int(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def next_id(name):
    """Allocate the next integer id for a collection."""
    counter = db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER
    )
    return counter["seq"]


def now_utc():
    return datetime.now(timezone.utc)


def get_serializer():
    return URLSafeTimedSerializer(app.secret_key)

# --- Passwords ---
def hash_password(password):
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())


def is_legacy_hash(stored):
    """Older accounts carry `iterations:salt_b64:hash_b64` PBKDF2-SHA1 hashes."""
    return isinstance(stored, str) and stored.count(':') == 2 and not stored.startswith('$2')


def verify_password(password, stored):
    if not password or not stored:
        return False
    if is_legacy_hash(stored):
        try:
            iterations_str, salt_b64, hash_b64 = stored.split(':')
            salt = base64.b64decode(salt_b64)
            expected = base64.b64decode(hash_b64)
            iterations = int(iterations_str)
        except ValueError:
            return False
        derived = hashlib.pbkdf2_hmac('sha1', password.encode('utf-8'), salt, iterations, dklen=len(expected))
        return hmac.compare_digest(derived, expected)
    if isinstance(stored, str):
        stored = stored.encode('utf-8')
    try:
        return bcrypt.checkpw(password.encode('utf-8'), stored)
    except ValueError:
        return False


def password_stamp(user):
    """Short fingerprint of the stored hash; changes whenever the password does."""
    stored = user.get('password') or b''
    if isinstance(stored, str):
        stored = stored.encode('utf-8')
    return hashlib.sha256(stored).hexdigest()[:16]


def generate_otp():
    return ''.join(secrets.choice(string.digits) for _ in range(6))


def send_email(to_email, subject, body):
    if not SMTP_EMAIL or not SMTP_PASSWORD:
        print("⚠️ SMTP credentials not configured. Email not sent.")
        return False
    try:
        msg = MIMEMultipart()
        msg['From'] = f"{MAIL_SENDER_NAME} <{SMTP_EMAIL}>"
        msg['To'] = to_email
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'plain'))

        server = smtplib.SMTP(SMTP_SERVER, SMTP_PORT)
        server.starttls()
        server.login(SMTP_EMAIL, SMTP_PASSWORD)
        server.sendmail(SMTP_EMAIL, to_email, msg.as_string())
        server.quit()
        return True
    except (smtplib.SMTPException, OSError) as e:
        print(f"❌ SMTP Error: {e}")
        return False

# --- Session & Access Control ---
def start_session(user):
    session.clear()
    session.permanent = True
    session['user_id'] = str(user['_id'])
    session['email'] = user['email']
    session['user_type'] = user.get('user_type', 'teacher')
    session['role_id'] = user.get('role_id')
    session['dept_id'] = user.get('dept_id')
    session['faculty_id'] = user.get('faculty_id')


def current_user():
    return {
        "id": session.get('user_id'),
        "email": session.get('email'),
        "user_type": session.get('user_type'),
        "role_id": session.get('role_id'),
        "dept_id": session.get('dept_id'),
        "faculty_id": session.get('faculty_id'),
    }


def public_user(user):
    department = db.departments.find_one({"Deptid": user.get('dept_id')}) if user.get('dept_id') else None
    faculty = db.faculties.find_one({"Fid": user.get('faculty_id')}) if user.get('faculty_id') else None
    return {
        "id": str(user['_id']),
        "email": user['email'],
        "user_type": user.get('user_type'),
        "name": user.get('display_name'),
        "department": department.get('name') if department else None,
        "faculty": faculty.get('Fname') if faculty else None,
        "role_id": user.get('role_id'),
        "faculty_id": user.get('faculty_id'),
        "dept_id": user.get('dept_id'),
        "active": user.get('active', True),
    }


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if request.method == 'OPTIONS':
            return jsonify(status='ok'), 200
        if 'user_id' not in session:
            return error_response("Unauthorized - Invalid or expired session", 401)
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if session.get('user_type') not in roles:
                return error_response("Forbidden", 403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = roles_required('admin')


def department_faculty(dept_id):
    dept = db.departments.find_one({"Deptid": dept_id}, {"Fid": 1})
    return dept.get('Fid') if dept else None


def resolve_teacher_id(requested=None, write=False):
    """Work out which teacher a request acts on.

    Teachers may only touch their own records. Admins may act for anyone.
    Department and faculty users get read access to teachers under them.
    Returns (teacher_id, None) or (None, error_response).
    """
    user_type = session.get('user_type')
    own_id = session.get('role_id')

    if is_blank(requested):
        if user_type == 'teacher' and own_id:
            return own_id, None
        return None, error_response("teacherId is required", 400)

    teacher_id = parse_int(requested)
    if teacher_id is None:
        return None, error_response("Invalid teacherId", 400)

    if user_type == 'teacher':
        if teacher_id != own_id:
            return None, error_response("Forbidden - User ID mismatch", 403)
        return teacher_id, None
    if user_type == 'admin':
        return teacher_id, None
    if write:
        return None, error_response("Forbidden", 403)

    teacher = db.teachers.find_one({"Tid": teacher_id}, {"deptid": 1})
    if not teacher:
        return None, error_response("Teacher not found", 404)
    if user_type == 'department' and teacher.get('deptid') == session.get('dept_id'):
        return teacher_id, None
    if user_type == 'faculty' and department_faculty(teacher.get('deptid')) == session.get('faculty_id'):
        return teacher_id, None
    return None, error_response("Forbidden - User ID mismatch", 403)


def resolve_dept_id(requested=None, write=False):
    """Department counterpart of resolve_teacher_id."""
    user_type = session.get('user_type')
    own_id = session.get('dept_id')

    if is_blank(requested):
        if own_id and user_type in ('department', 'teacher'):
            return own_id, None
        return None, error_response("deptId is required", 400)

    dept_id = parse_int(requested)
    if dept_id is None:
        return None, error_response("Valid department ID is required", 400)

    if not db.departments.find_one({"Deptid": dept_id}, {"_id": 1}):
        return None, error_response("Department not found", 404)

    if user_type == 'admin':
        return dept_id, None
    if user_type == 'department':
        if dept_id != own_id:
            return None, error_response("Forbidden - Department ID mismatch", 403)
        return dept_id, None
    if write:
        return None, error_response("Forbidden", 403)
    if user_type == 'teacher' and dept_id == own_id:
        return dept_id, None
    if user_type == 'faculty' and department_faculty(dept_id) == session.get('faculty_id'):
        return dept_id, None
    return None, error_response("Forbidden - Department ID mismatch", 403)

# --- Activity Log ---
def get_client_ip():
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return (request.headers.get('X-Real-IP')
            or request.headers.get('CF-Connecting-IP')
            or request.remote_addr)


def log_activity(action_type, entity_name, entity_id=None, teacher_id=None, dept_id=None):
    """Record who did what, and for which teacher or department.

    `teacher_id`/`dept_id` name the owner of the record acted on and fall
    back to the caller's own ids. Never fails the calling request.
    """
    if teacher_id is None and session.get('user_type') == 'teacher':
        teacher_id = session.get('role_id')
    try:
        if dept_id is None:
            if teacher_id is not None and teacher_id != session.get('role_id'):
                teacher = db.teachers.find_one({"Tid": teacher_id}, {"deptid": 1}) or {}
                dept_id = teacher.get('deptid')
            else:
                dept_id = session.get('dept_id')
        db.activity_logs.insert_one({
            "performed_by_id": session.get('user_id'),
            "performed_by_type": session.get('user_type'),
            "performed_by_email": session.get('email'),
            "teacher_id": teacher_id,
            "dept_id": dept_id,
            "action_type": action_type,
            "entity_name": entity_name,
            "entity_id": str(entity_id) if entity_id is not None else None,
            "ip_address": get_client_ip(),
            "user_agent": request.headers.get('User-Agent'),
            "created_at": now_utc()
        })
    except PyMongoError as e:
        print(f"⚠️ Failed to write activity log for {action_type} {entity_name}: {e}")

# --- Lookups ---
def lookup_exists(category, value):
    return db.lookups.count_documents({"category": category, "id": value}) > 0


def lookup_options(category):
    cursor = db.lookups.find({"category": category, "active": {"$ne": False}}).sort("id", ASCENDING)
    return [{"id": l["id"], "name": l["name"]} for l in cursor]


def lookup_name_map(category):
    return {l["id"]: l["name"] for l in db.lookups.find({"category": category})}


def attach_lookup_names(spec, records):
    """Add `<field>_name` next to every lookup-backed field."""
    lookups = spec.get('lookups', {})
    if not lookups:
        return records
    names = {category: lookup_name_map(category) for category in set(lookups.values())}
    for record in records:
        for field, category in lookups.items():
            record[f"{field}_name"] = names[category].get(record.get(field))
    return records

# --- Document Storage ---
ALLOWED_DOC_EXTENSIONS = {'pdf', 'jpg', 'jpeg'}
ALLOWED_DOC_MIME_TYPES = {'application/pdf', 'image/jpeg', 'image/jpg'}
ALLOWED_PROFILE_IMAGE_TYPES = {'image/jpeg': 'jpg', 'image/jpg': 'jpg', 'image/png': 'png'}
MAX_DOCUMENT_SIZE = 1 * 1024 * 1024
INVALID_FILE_TYPE_MESSAGE = "Invalid file type. Only JPG, JPEG, and PDF files are allowed."
VIRTUAL_PATH_RE = re.compile(r'^upload/[a-zA-Z0-9_\-\s]+/[a-zA-Z0-9_\-.@%]+\.(pdf|jpg|jpeg)$')
MAGIC_BYTES = {
    'pdf': [b'%PDF'],
    'jpg': [b'\xff\xd8\xff'],
    'jpeg': [b'\xff\xd8\xff'],
    'png': [b'\x89PNG\r\n\x1a\n'],
}


def sanitize_folder(folder):
    folder = (folder or '').replace('..', '')
    return folder.strip().strip('/')


def is_valid_virtual_path(path):
    if not path or '..' in path or '//' in path:
        return False
    return bool(VIRTUAL_PATH_RE.match(path))


def build_document_filename(ext, folder, user_id=None, record_id=None, email=None, file_num=None, metric=None):
    """Pick the stored file name from whichever identifiers the upload carries."""
    if user_id and record_id and metric:
        stem = f"{user_id}_{record_id}_{metric}"
    elif user_id and record_id:
        stem = f"{user_id}_{record_id}"
    elif record_id and file_num:
        stem = f"_{record_id}_{file_num}"
    elif email:
        stem = f"{email}"
    elif record_id:
        stem = f"{record_id}"
    elif user_id:
        stem = f"{user_id}_{folder.split('/')[-1]}"
    else:
        raise ValueError("userId, recordId or email is required to name the document")
    return f"{stem}.{ext}"


def validate_document(ext, mimetype, data):
    """Returns an error message, or None when the file is acceptable."""
    if ext not in ALLOWED_DOC_EXTENSIONS or (mimetype or '').lower() not in ALLOWED_DOC_MIME_TYPES:
        return INVALID_FILE_TYPE_MESSAGE
    if len(data) == 0:
        return "File is empty"
    if len(data) > MAX_DOCUMENT_SIZE:
        return "File size exceeds 1MB limit"
    if not any(data.startswith(magic) for magic in MAGIC_BYTES[ext]):
        return "File content does not match its type"
    return None


def store_document(virtual_path, data, content_type):
    """Save bytes under a virtual path, replacing any earlier upload."""
    fs = GridFS(db)
    for old in fs.find({"filename": virtual_path}):
        fs.delete(old._id)
    return fs.put(
        data,
        filename=virtual_path,
        metadata={
            "content_type": content_type,
            "uploaded_by": session.get('user_id'),
            "uploaded_at": now_utc()
        }
    )


def load_document(virtual_path):
    fs = GridFS(db)
    return fs.find_one({"filename": virtual_path})


def delete_stored_document(virtual_path):
    fs = GridFS(db)
    removed = 0
    for grid_file in fs.find({"filename": virtual_path}):
        fs.delete(grid_file._id)
        removed += 1
    return removed


def discard_document(virtual_path):
    """Best-effort removal of a record's attachment."""
    if not virtual_path or not str(virtual_path).startswith('upload/'):
        return
    try:
        if delete_stored_document(virtual_path):
            log_activity('DELETE_FILE', virtual_path.split('/')[1], virtual_path)
    except PyMongoError as e:
        print(f"⚠️ Could not delete stored document {virtual_path}: {e}")


def document_response(grid_file, as_attachment=False):
    metadata = grid_file.metadata or {}
    return send_file(
        BytesIO(grid_file.read()),
        mimetype=metadata.get('content_type') or 'application/octet-stream',
        download_name=grid_file.filename.split('/')[-1],
        as_attachment=as_attachment
    )


# --- Account creation ---
def create_user_account(data, allowed_types):
    """Create a login (and the linked teacher profile for teachers).

    Returns (user_doc, None) or (None, error_response).
    """
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    user_type = (data.get('user_type') or 'teacher').strip().lower()

    if not email or not password:
        return None, error_response("Email and password are required.", 400)
    if len(password) < MIN_PASSWORD_LENGTH:
        return None, error_response(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", 400)
    if user_type not in allowed_types or not db.user_types.find_one({"name": user_type}):
        return None, error_response("Invalid user type", 400)
    if db.users.find_one({"email": email}, {"_id": 1}):
        return None, error_response("Email ID already exists.", 409)

    user = {
        "email": email,
        "password": hash_password(password),
        "user_type": user_type,
        "display_name": (data.get('display_name') or '').strip() or None,
        "active": True,
        "created_at": now_utc()
    }
    teacher_id = None

    if user_type == 'teacher':
        fname = (data.get('fname') or '').strip()
        dept_id = parse_int(data.get('deptid') or data.get('dept_id'))
        if not fname or dept_id is None:
            return None, error_response("First name and department are required for teachers", 400)
        faculty_id = department_faculty(dept_id)
        if faculty_id is None:
            return None, error_response("Invalid reference: deptid", 400)
        designation = parse_int(data.get('designation'))
        if designation is not None and not lookup_exists('designations', designation):
            return None, error_response("Invalid reference: designation", 400)

        teacher_id = next_id('teachers')
        db.teachers.insert_one({
            "Tid": teacher_id,
            "fname": fname,
            "mname": (data.get('mname') or '').strip() or None,
            "lname": (data.get('lname') or '').strip() or None,
            "email_id": email,
            "phone_no": data.get('phone_no'),
            "deptid": dept_id,
            "designation": designation,
            "created_at": now_utc()
        })
        user.update({"role_id": teacher_id, "dept_id": dept_id, "faculty_id": faculty_id})
        if not user['display_name']:
            user['display_name'] = " ".join(x for x in [fname, data.get('lname')] if x)
    elif user_type == 'department':
        dept_id = parse_int(data.get('dept_id') or data.get('deptid'))
        faculty_id = department_faculty(dept_id) if dept_id is not None else None
        if faculty_id is None:
            return None, error_response("Invalid reference: dept_id", 400)
        user.update({"dept_id": dept_id, "faculty_id": faculty_id})
    elif user_type == 'faculty':
        faculty_id = parse_int(data.get('faculty_id'))
        if faculty_id is None or not db.faculties.find_one({"Fid": faculty_id}):
            return None, error_response("Invalid reference: faculty_id", 400)
        user['faculty_id'] = faculty_id

    try:
        result = db.users.insert_one(user)
    except DuplicateKeyError:
        if teacher_id is not None:
            db.teachers.delete_one({"Tid": teacher_id})
        return None, error_response("Email ID already exists.", 409)
    user['_id'] = result.inserted_id
    return user, None

# --- Auth Routes ---
@app.route('/api/auth/login', methods=['POST', 'OPTIONS'])
@limiter.limit("5 per minute")
def login_user():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    data = get_json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return error_response("Email and password are required.", 400)

    try:
        user = db.users.find_one({"email": email})
        if not user or user.get('active') is False or not verify_password(password, user.get('password')):
            return error_response("Invalid email or password.", 401)

        if is_legacy_hash(user.get('password')):
            db.users.update_one({"_id": user['_id']}, {"$set": {"password": hash_password(password)}})
            print(f"🔁 Upgraded legacy password hash for {email}")

        start_session(user)
        log_activity('LOGIN', 'User', user['_id'])
        return jsonify({"success": True, "message": "Login successful", "user": public_user(user)}), 200
    except PyMongoError as e:
        return db_error_response(e, "log in")


@app.route('/api/auth/session', methods=['GET', 'OPTIONS'])
@login_required
def get_session():
    return jsonify({"success": True, "authenticated": True, "user": current_user()}), 200


@app.route('/api/auth/logout', methods=['POST', 'OPTIONS'])
def logout_user():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    session.clear()
    return jsonify({"success": True, "message": "Logged out successfully"}), 200


@app.route('/api/auth/send-otp', methods=['POST', 'OPTIONS'])
@limiter.limit("5 per minute")
def send_otp():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    email = (get_json_body().get('email') or '').strip().lower()
    if not email:
        return error_response("Email is required", 400)

    user = db.users.find_one({"email": email, "active": {"$ne": False}})
    if not user:
        return error_response("Email not registered", 404)

    otp = generate_otp()
    expiry = now_utc() + timedelta(minutes=OTP_VALID_MINUTES)
    db.otps.update_one(
        {"email": email, "purpose": "login"},
        {"$set": {"otp": otp, "expiry": expiry}},
        upsert=True
    )

    body = (f"Your login OTP is: {otp}\n\n"
            f"This OTP is valid for {OTP_VALID_MINUTES} minutes. Do not share it with anyone.")
    if not send_email(email, "Your Login OTP", body):
        return error_response("Failed to send OTP email", 500)
    return jsonify({"success": True, "message": "OTP sent to your email"}), 200


@app.route('/api/auth/verify-otp', methods=['POST', 'OPTIONS'])
@limiter.limit("5 per minute")
def verify_otp():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    data = get_json_body()
    email = (data.get('email') or '').strip().lower()
    otp = str(data.get('otp') or '').strip()
    if not email or not otp:
        return error_response("Email and OTP are required", 400)

    record = db.otps.find_one({"email": email, "purpose": "login"})
    if not record or record.get('otp') != otp:
        return error_response("Invalid OTP", 400)

    expiry = record['expiry']
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    if now_utc() > expiry:
        db.otps.delete_one({"_id": record['_id']})
        return error_response("OTP has expired", 400)

    db.otps.delete_one({"_id": record['_id']})
    user = db.users.find_one({"email": email, "active": {"$ne": False}})
    if not user:
        return error_response("Invalid email or password.", 401)
    start_session(user)
    log_activity('LOGIN_OTP', 'User', user['_id'])
    return jsonify({"success": True, "message": "Login successful", "user": public_user(user)}), 200


@app.route('/api/auth/signup', methods=['POST', 'OPTIONS'])
@limiter.limit("5 per minute")
def signup():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    try:
        user, error = create_user_account(get_json_body(), allowed_types=('teacher', 'department', 'faculty'))
        if error:
            return error
        print(f"✅ New {user['user_type']} account: {user['email']}")
        return jsonify({
            "success": True,
            "message": "Account created successfully",
            "user": public_user(user)
        }), 201
    except PyMongoError as e:
        return db_error_response(e, "create account")


@app.route('/api/auth/forgot-password', methods=['POST', 'OPTIONS'])
@limiter.limit("5 per minute")
def forgot_password():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    email = (get_json_body().get('email') or '').strip().lower()
    if not email:
        return error_response("Email is required", 400)

    user = db.users.find_one({"email": email, "active": {"$ne": False}})
    if user:
        token = get_serializer().dumps({"email": email, "stamp": password_stamp(user)}, salt='password-reset')
        link = f"{FRONTEND_URL}/reset-password?token={token}"
        body = (f"A password reset was requested for your account.\n\n"
                f"Reset your password using this link (valid for 5 minutes):\n{link}\n\n"
                f"If you did not request this, you can ignore this email.")
        if not send_email(email, "Password Reset Request", body):
            print(f"⚠️ Could not send reset link to {email}")

    return jsonify({"success": True, "message": "If the email exists, a reset link will be sent."}), 200


@app.route('/api/auth/reset-password', methods=['POST', 'OPTIONS'])
def reset_password():
    if request.method == 'OPTIONS':
        return jsonify(status='ok'), 200
    data = get_json_body()
    token = data.get('token') or ''
    new_password = data.get('new_password') or ''

    if not token or not new_password:
        return error_response("Token and new password are required", 400)
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", 400)

    try:
        payload = get_serializer().loads(token, salt='password-reset', max_age=RESET_TOKEN_MAX_AGE)
    except SignatureExpired:
        return error_response("Reset link has expired", 400)
    except BadSignature:
        return error_response("Invalid reset link", 400)

    user = db.users.find_one({"email": payload.get('email')})
    if not user or payload.get('stamp') != password_stamp(user):
        return error_response("Invalid reset link", 400)

    db.users.update_one({"_id": user['_id']}, {"$set": {"password": hash_password(new_password)}})
    return jsonify({"success": True, "message": "Password has been reset successfully"}), 200


@app.route('/api/auth/change-password', methods=['POST', 'OPTIONS'])
@login_required
def change_password():
    data = get_json_body()
    current = data.get('current_password') or ''
    new_password = data.get('new_password') or ''
    if not current or not new_password:
        return error_response("Current and new password are required", 400)
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return error_response(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", 400)

    user = db.users.find_one({"_id": ObjectId(session['user_id'])})
    if not user or not verify_password(current, user.get('password')):
        return error_response("Current password is incorrect", 400)

    db.users.update_one({"_id": user['_id']}, {"$set": {"password": hash_password(new_password)}})
    log_activity('UPDATE', 'Password', user['_id'])
    return jsonify({"success": True, "message": "Password changed successfully"}), 200

# --- Admin Routes ---
@app.route('/api/admin/user-types', methods=['GET', 'POST', 'OPTIONS'])
@admin_required
def admin_user_types():
    if request.method == 'GET':
        types = [serialize_record(t) for t in db.user_types.find().sort("id", ASCENDING)]
        return jsonify({"success": True, "userTypes": types}), 200

    name = (get_json_body().get('name') or '').strip().lower()
    if not name:
        return error_response("User type name is required", 400)
    try:
        new_id = next_id('user_types')
        while db.user_types.find_one({"id": new_id}):
            new_id = next_id('user_types')
        db.user_types.insert_one({"id": new_id, "name": name})
        log_activity('CREATE', 'UserType', new_id)
        return jsonify({"success": True, "message": "User type created", "id": new_id}), 201
    except PyMongoError as e:
        return db_error_response(e, "create user type")


@app.route('/api/admin/users', methods=['GET', 'POST', 'OPTIONS'])
@admin_required
def admin_users():
    if request.method == 'GET':
        query = {}
        if request.args.get('user_type'):
            query['user_type'] = request.args['user_type']
        users = [public_user(u) for u in db.users.find(query, {"password": 0}).sort("email", ASCENDING)]
        return jsonify({"success": True, "users": users}), 200

    try:
        user, error = create_user_account(get_json_body(), allowed_types=USER_TYPES)
        if error:
            return error
        log_activity('CREATE', 'User', user['_id'])
        return jsonify({"success": True, "message": "User registered successfully", "user": public_user(user)}), 201
    except PyMongoError as e:
        return db_error_response(e, "register user")


@app.route('/api/admin/users/<user_id>', methods=['PATCH', 'OPTIONS'])
@admin_required
def admin_update_user(user_id):
    data = get_json_body()
    if not isinstance(data.get('active'), bool):
        return error_response("active must be true or false", 400)
    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        return error_response("Invalid user ID", 400)

    result = db.users.update_one({"_id": oid}, {"$set": {"active": data['active']}})
    if result.matched_count == 0:
        return error_response("User not found", 404)
    log_activity('ACTIVATE' if data['active'] else 'DEACTIVATE', 'User', user_id)
    return jsonify({"success": True, "message": "User updated successfully"}), 200


@app.route('/api/admin/lookups/<category>', methods=['GET', 'POST', 'DELETE', 'OPTIONS'])
@admin_required
def admin_lookups(category):
    if category not in LOOKUP_SEED:
        return error_response(f"Unknown lookup category: {category}", 404)

    if request.method == 'GET':
        values = [serialize_record(l) for l in db.lookups.find({"category": category}).sort("id", ASCENDING)]
        return jsonify({"success": True, "category": category, "values": values}), 200

    if request.method == 'DELETE':
        lookup_id = parse_int(request.args.get('id'))
        if lookup_id is None:
            return error_response("Valid lookup id is required", 400)
        # Records keep pointing at the id, so values are hidden rather than removed.
        result = db.lookups.update_one({"category": category, "id": lookup_id}, {"$set": {"active": False}})
        if result.matched_count == 0:
            return error_response("Lookup value not found", 404)
        log_activity('DELETE', f"Lookup:{category}", lookup_id)
        return jsonify({"success": True, "message": "Lookup value removed"}), 200

    name = (get_json_body().get('name') or '').strip()
    if not name:
        return error_response("Name is required", 400)
    if db.lookups.find_one({"category": category, "name": name, "active": {"$ne": False}}):
        return error_response("Duplicate entry: value already exists", 409)
    try:
        last = db.lookups.find_one({"category": category}, sort=[("id", DESCENDING)])
        new_id = (last['id'] + 1) if last else 1
        db.lookups.insert_one({"category": category, "id": new_id, "name": name, "active": True})
        log_activity('CREATE', f"Lookup:{category}", new_id)
        return jsonify({"success": True, "message": "Lookup value added", "id": new_id}), 201
    except PyMongoError as e:
        return db_error_response(e, "add lookup value")


@app.route('/api/admin/activity-logs', methods=['GET', 'OPTIONS'])
@admin_required
def admin_activity_logs():
    query = {}
    if request.args.get('entity'):
        query['entity_name'] = request.args['entity']
    if request.args.get('action'):
        query['action_type'] = request.args['action'].upper()
    if request.args.get('performed_by'):
        query['performed_by_id'] = request.args['performed_by']
    limit = parse_int(request.args.get('limit')) or 100
    limit = max(1, min(limit, 500))

    logs = [serialize_record(l) for l in db.activity_logs.find(query).sort("created_at", DESCENDING).limit(limit)]
    return jsonify({"success": True, "logs": logs}), 200

# --- Dropdown Routes ---
def faculty_options():
    return [{"Fid": f["Fid"], "Fname": f["Fname"]} for f in db.faculties.find().sort("Fid", ASCENDING)]


def department_options(faculty_id):
    return [{"Deptid": d["Deptid"], "name": d["name"], "Fid": d["Fid"]}
            for d in db.departments.find({"Fid": faculty_id}).sort("Deptid", ASCENDING)]


@app.route('/api/shared/dropdown/all', methods=['GET', 'OPTIONS'])
@login_required
def dropdown_all():
    payload = {"success": True, "faculties": faculty_options()}
    for category in LOOKUP_SEED:
        payload[category] = lookup_options(category)
    return cache_response(jsonify(payload), 1800)


@app.route('/api/shared/dropdown/faculty', methods=['GET', 'OPTIONS'])
@app.route('/api/faculty', methods=['GET', 'OPTIONS'])
@login_required
def dropdown_faculty():
    return cache_response(jsonify({"success": True, "faculties": faculty_options()}), 1800)


@app.route('/api/shared/dropdown/department', methods=['GET', 'OPTIONS'])
@app.route('/api/department', methods=['GET', 'OPTIONS'])
@login_required
def dropdown_department():
    faculty_id = parse_int(request.args.get('fid') or request.args.get('facultyId'))
    if faculty_id is None:
        return error_response("Valid faculty ID is required", 400)
    return cache_response(jsonify({"success": True, "departments": department_options(faculty_id)}), 1800)


@app.route('/api/shared/dropdown/user-types', methods=['GET', 'OPTIONS'])
@login_required
def dropdown_user_types():
    types = [{"id": t["id"], "name": t["name"]} for t in db.user_types.find().sort("id", ASCENDING)]
    return cache_response(jsonify({"success": True, "userTypes": types}), 1800)


@app.route('/api/shared/dept-dropdowns/event-student-body-level', methods=['GET', 'OPTIONS'])
@login_required
def dropdown_student_body_levels():
    levels = lookup_options('eventStudentBodyLevels')
    return cache_response(jsonify({"success": True, "levels": levels}), 1800)


@app.route('/api/shared/dropdown/<category>', methods=['GET', 'OPTIONS'])
@login_required
def dropdown_category(category):
    if category not in LOOKUP_SEED:
        return error_response(f"Unknown dropdown category: {category}", 404)
    return cache_response(jsonify({"success": True, category: lookup_options(category)}), 1800)

# --- Teacher Profile ---
def teacher_full_name(teacher):
    return " ".join(x for x in [teacher.get('fname'), teacher.get('mname'), teacher.get('lname')] if x)


def teacher_context(teacher):
    """Department, faculty and designation names for a teacher document."""
    department = db.departments.find_one({"Deptid": teacher.get('deptid')}) or {}
    faculty = {}
    if department:
        faculty = db.faculties.find_one({"Fid": department.get('Fid')}) or {}
    designation = None
    if teacher.get('designation') is not None:
        designation = lookup_name_map('designations').get(teacher['designation'])
    return department.get('name'), faculty.get('Fname'), designation


def profile_records(kind, teacher_id):
    spec = PROFILE_RECORDS[kind]
    records = [serialize_record(r) for r in db[spec['collection']].find({"teacher_id": teacher_id}).sort("id", ASCENDING)]
    for record in records:
        record[spec['id_field']] = record.get('id')
    return attach_lookup_names(spec, records)


@app.route('/api/teacher/profile', methods=['GET', 'PUT', 'OPTIONS'])
@login_required
def teacher_profile():
    if request.method == 'GET':
        teacher_id, error = resolve_teacher_id(request.args.get('teacherId'))
        if error:
            return error
        teacher = db.teachers.find_one({"Tid": teacher_id})
        if not teacher:
            return error_response("Teacher not found", 404)
        department, faculty, designation = teacher_context(teacher)
        return jsonify({
            "success": True,
            "teacherInfo": serialize_record(teacher),
            "department": department,
            "faculty": faculty,
            "designation": designation,
            "teacherExperience": profile_records('experience', teacher_id),
            "postDoctoralExp": profile_records('phd-research', teacher_id),
            "graduationDetails": profile_records('graduation', teacher_id),
        }), 200

    data = get_json_body()
    teacher_id, error = resolve_teacher_id(data.get('teacherId'), write=True)
    if error:
        return error
    info = data.get('teacherInfo')
    if not isinstance(info, dict):
        return error_response("teacherInfo is required", 400)

    updates = {}
    for field in TEACHER_INFO_FIELDS:
        if field not in info:
            continue
        value = info[field]
        if field == 'fname' and is_blank(value):
            return error_response("First name is required", 400)
        if field == 'DOB' and not is_blank(value):
            try:
                value = to_iso_date(value)
            except ValueError:
                return error_response("Invalid date for DOB. Expected YYYY-MM-DD", 400)
        if field == 'designation' and not is_blank(value):
            value = parse_int(value)
            if value is None or not lookup_exists('designations', value):
                return error_response("Invalid reference: designation", 400)
        updates[field] = value.strip() if isinstance(value, str) else value

    if not updates:
        return error_response("No profile fields to update", 400)
    try:
        result = db.teachers.update_one({"Tid": teacher_id}, {"$set": updates})
        if result.matched_count == 0:
            return error_response("Teacher not found", 404)
        log_activity('UPDATE', 'TeacherProfile', teacher_id, teacher_id=teacher_id)
        return jsonify({"success": True, "message": "Profile updated successfully"}), 200
    except PyMongoError as e:
        return db_error_response(e, "update profile")


def register_profile_routes(kind, spec):
    """GET/POST/PUT/DELETE for one profile sub-resource list."""
    collection_name = spec['collection']
    body_key = spec['body_key']
    id_field = spec['id_field']
    label = spec['label']

    def handler():
        if request.method == 'GET':
            teacher_id, error = resolve_teacher_id(request.args.get('teacherId'))
            if error:
                return error
            return jsonify({"success": True, body_key: profile_records(kind, teacher_id)}), 200

        if request.method == 'DELETE':
            teacher_id, error = resolve_teacher_id(request.args.get('teacherId'), write=True)
            if error:
                return error
            record_id = parse_int(request.args.get('id'))
            if record_id is None:
                return error_response("Valid id is required", 400)
            existing = db[collection_name].find_one_and_delete({"id": record_id, "teacher_id": teacher_id})
            if not existing:
                return error_response(f"{label} record not found", 404)
            discard_document(existing.get(spec['doc_field']))
            log_activity('DELETE', label, record_id, teacher_id=teacher_id)
            return jsonify({"success": True, "message": f"{label} deleted successfully"}), 200

        data = get_json_body()
        teacher_id, error = resolve_teacher_id(data.get('teacherId'), write=True)
        if error:
            return error
        is_valid, error_msg, validated = validate_record(spec, data.get(body_key), lookup_exists)
        if not is_valid:
            return error_response(error_msg, 400)

        try:
            if request.method == 'POST':
                new_id = next_id(collection_name)
                db[collection_name].insert_one(dict(validated, id=new_id, teacher_id=teacher_id, created_at=now_utc()))
                log_activity('CREATE', label, new_id, teacher_id=teacher_id)
                return jsonify({"success": True, "message": f"{label} added successfully", id_field: new_id}), 201

            record_id = parse_int(data[body_key].get(id_field))
            if record_id is None:
                return error_response(f"{id_field} is required", 400)
            existing = db[collection_name].find_one({"id": record_id, "teacher_id": teacher_id})
            if not existing:
                return error_response(f"{label} record not found", 404)
            doc_field = spec['doc_field']
            if doc_field in validated and existing.get(doc_field) and existing[doc_field] != validated[doc_field]:
                discard_document(existing[doc_field])
            db[collection_name].update_one({"_id": existing['_id']}, {"$set": dict(validated, updated_at=now_utc())})
            log_activity('UPDATE', label, record_id, teacher_id=teacher_id)
            return jsonify({"success": True, "message": f"{label} updated successfully"}), 200
        except PyMongoError as e:
            return db_error_response(e, f"save {label.lower()}")

    handler.__name__ = f"profile_{kind.replace('-', '_')}"
    app.add_url_rule(f'/api/teacher/profile/{kind}', view_func=login_required(handler),
                     methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'])


for _kind, _spec in PROFILE_RECORDS.items():
    register_profile_routes(_kind, _spec)


@app.route('/api/teacher/profile/<any(graduation, "phd-research"):kind>/<int:record_id>/document',
           methods=['PATCH', 'OPTIONS'])
@login_required
def patch_profile_document(kind, record_id):
    spec = PROFILE_RECORDS[kind]
    data = get_json_body()
    teacher_id, error = resolve_teacher_id(data.get('teacherId'), write=True)
    if error:
        return error
    doc_field = spec['doc_field']
    path = data.get(doc_field)
    if path is not None and not is_valid_virtual_path(path):
        return error_response("Invalid virtual path", 400)

    existing = db[spec['collection']].find_one({"id": record_id, "teacher_id": teacher_id})
    if not existing:
        return error_response(f"{spec['label']} record not found", 404)
    if existing.get(doc_field) and existing[doc_field] != path:
        discard_document(existing[doc_field])
    db[spec['collection']].update_one({"_id": existing['_id']}, {"$set": {doc_field: path}})
    log_activity('PATCH', spec['label'], record_id, teacher_id=teacher_id)
    return jsonify({"success": True, "message": "Document updated successfully"}), 200


@app.route('/api/teacher/profile/image', methods=['GET', 'POST', 'OPTIONS'])
@login_required
def teacher_profile_image():
    if request.method == 'GET':
        teacher_id, error = resolve_teacher_id(request.args.get('teacherId'))
        if error:
            return error
        teacher = db.teachers.find_one({"Tid": teacher_id}, {"profile_image": 1})
        if not teacher or not teacher.get('profile_image'):
            return error_response("Profile image not found", 404)
        grid_file = load_document(teacher['profile_image'])
        if not grid_file:
            return error_response("Profile image not found", 404)
        return document_response(grid_file)

    teacher_id, error = resolve_teacher_id(request.form.get('teacherId'), write=True)
    if error:
        return error
    file = request.files.get('file') or request.files.get('image')
    if not file or not file.filename:
        return error_response("No image provided", 400)
    ext = ALLOWED_PROFILE_IMAGE_TYPES.get((file.mimetype or '').lower())
    if not ext:
        return error_response("Invalid image type. Only JPEG and PNG images are allowed.", 400)
    data = file.read()
    if len(data) > MAX_DOCUMENT_SIZE:
        return error_response("File size exceeds 1MB limit", 400)
    if not data.startswith(MAGIC_BYTES[ext][0]):
        return error_response("File content does not match its type", 400)

    virtual_path = f"upload/profile/{teacher_id}_profile.{ext}"
    teacher = db.teachers.find_one({"Tid": teacher_id}, {"profile_image": 1})
    if not teacher:
        return error_response("Teacher not found", 404)
    if teacher.get('profile_image') and teacher['profile_image'] != virtual_path:
        discard_document(teacher['profile_image'])
    store_document(virtual_path, data, file.mimetype)
    db.teachers.update_one({"Tid": teacher_id}, {"$set": {"profile_image": virtual_path}})
    log_activity('UPLOAD', 'profile', virtual_path, teacher_id=teacher_id)
    return jsonify({"success": True, "message": "Profile image uploaded successfully", "virtualPath": virtual_path}), 200


# --- Teacher Records ---
def teacher_record_list(spec, teacher_id, year=None):
    query = {"teacher_id": teacher_id}
    if year is not None and spec.get('date_field'):
        query[spec['date_field']] = {"$regex": f"^{year}"}
    sort = [("id", DESCENDING)]
    if spec.get('date_field'):
        sort.insert(0, (spec['date_field'], DESCENDING))
    cursor = db[spec['collection']].find(query).sort(sort)
    records = [serialize_record(r, spec['id_key']) for r in cursor]
    return attach_lookup_names(spec, records)


def register_teacher_record_routes(path, spec):
    """Wire GET/POST/PUT/PATCH/DELETE for one teacher record kind."""
    collection_name = spec['collection']
    body_key = spec['body_key']
    id_key = spec['id_key']
    label = spec['label']
    doc_field = spec.get('doc_field')

    def handler():
        if request.method == 'GET':
            teacher_id, error = resolve_teacher_id(request.args.get('teacherId'))
            if error:
                return error
            year = None
            if spec.get('year_filter') and request.args.get('year'):
                year = parse_int(request.args['year'])
                if year is None:
                    return error_response("Invalid year", 400)
            try:
                records = teacher_record_list(spec, teacher_id, year)
            except PyMongoError as e:
                return db_error_response(e, f"fetch {label.lower()} records")
            response = jsonify({"success": True, spec['list_key']: records})
            if path == 'publication/journals':
                response.headers['Cache-Control'] = 'no-store'
            return response, 200

        if request.method == 'DELETE':
            teacher_id, error = resolve_teacher_id(request.args.get('teacherId'), write=True)
            if error:
                return error
            record_id = parse_int(request.args.get(id_key) or request.args.get('id'))
            if record_id is None:
                return error_response(f"{id_key} is required", 400)
            try:
                existing = db[collection_name].find_one_and_delete({"id": record_id, "teacher_id": teacher_id})
            except PyMongoError as e:
                return db_error_response(e, f"delete {label.lower()}")
            if not existing:
                return error_response(f"{label} not found", 404)
            if doc_field:
                discard_document(existing.get(doc_field))
            log_activity('DELETE', label, record_id, teacher_id=teacher_id)
            return jsonify({"success": True, "message": f"{label} deleted successfully"}), 200

        data = get_json_body()
        teacher_id, error = resolve_teacher_id(data.get('teacherId'), write=True)
        if error:
            return error
        body = data.get(body_key)

        try:
            if request.method == 'POST':
                is_valid, error_msg, validated = validate_record(spec, body, lookup_exists)
                if not is_valid:
                    return error_response(error_msg, 400)
                new_id = next_id(collection_name)
                db[collection_name].insert_one(dict(validated, id=new_id, teacher_id=teacher_id, created_at=now_utc()))
                log_activity('CREATE', label, new_id, teacher_id=teacher_id)
                return jsonify({"success": True, "message": f"{label} added successfully", id_key: new_id}), 201

            record_id = parse_int(data.get(id_key))
            if record_id is None and isinstance(body, dict):
                record_id = parse_int(body.get(id_key) or body.get('id'))
            if record_id is None:
                return error_response(f"{id_key} is required", 400)
            existing = db[collection_name].find_one({"id": record_id, "teacher_id": teacher_id})
            if not existing:
                return error_response(f"{label} not found", 404)

            if request.method == 'PATCH' and isinstance(body, dict):
                # Partial update: fill gaps from the stored record before validating.
                merged = {k: v for k, v in existing.items() if k in spec['required'] + spec.get('fields', [])}
                merged.update(body)
                body = merged
            is_valid, error_msg, validated = validate_record(spec, body, lookup_exists)
            if not is_valid:
                return error_response(error_msg, 400)

            if doc_field and doc_field in validated and existing.get(doc_field) \
                    and existing[doc_field] != validated[doc_field]:
                discard_document(existing[doc_field])
            db[collection_name].update_one({"_id": existing['_id']}, {"$set": dict(validated, updated_at=now_utc())})
            log_activity('PATCH' if request.method == 'PATCH' else 'UPDATE', label, record_id, teacher_id=teacher_id)
            return jsonify({"success": True, "message": f"{label} updated successfully", id_key: record_id}), 200
        except PyMongoError as e:
            return db_error_response(e, f"save {label.lower()}")

    handler.__name__ = "teacher_" + re.sub(r'[^a-z0-9]+', '_', path.lower())
    app.add_url_rule(f'/api/teacher/{path}', view_func=login_required(handler),
                     methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'])


for _path, _spec in TEACHER_RECORDS.items():
    register_teacher_record_routes(_path, _spec)

# --- Teacher Dashboard ---
def count_teacher_records(path, teacher_ids):
    collection = db[TEACHER_RECORDS[path]['collection']]
    if isinstance(teacher_ids, int):
        return collection.count_documents({"teacher_id": teacher_ids})
    return collection.count_documents({"teacher_id": {"$in": list(teacher_ids)}})


def recent_activities(query, limit=10):
    logs = db.activity_logs.find(query).sort("created_at", DESCENDING).limit(limit)
    return [{
        "action_type": l.get('action_type'),
        "entity_name": l.get('entity_name'),
        "entity_id": l.get('entity_id'),
        "performed_by_type": l.get('performed_by_type'),
        "created_at": convert_objectid_to_str(l.get('created_at')),
    } for l in logs]


def lookup_id_by_name(category, name):
    lookup = db.lookups.find_one({"category": category, "name": name})
    return lookup['id'] if lookup else None


@app.route('/api/teacher/dashboard', methods=['GET', 'OPTIONS'])
@login_required
def teacher_dashboard():
    teacher_id, error = resolve_teacher_id(request.args.get('teacherId'))
    if error:
        return error
    try:
        projects = list(db.research_projects.find({"teacher_id": teacher_id}))
        journals = count_teacher_records('publication/journals', teacher_id)
        books = count_teacher_records('publication/books', teacher_id)
        papers = count_teacher_records('publication/papers', teacher_id)

        statuses = lookup_name_map('projectStatuses')
        research_summary = {
            "ongoing": sum(1 for p in projects if statuses.get(p.get('status')) == 'Ongoing'),
            "completed": sum(1 for p in projects if statuses.get(p.get('status')) == 'Completed'),
            "totalGrantSanctioned": sum(p.get('grant_sanctioned') or 0 for p in projects),
            "totalGrantReceived": sum(p.get('grant_received') or 0 for p in projects),
        }
        quick_counts = {path: count_teacher_records(path, teacher_id) for path in TEACHER_RECORDS}

        return jsonify({
            "success": True,
            "researchProjects": len(projects),
            "booksPublished": books,
            "journalArticles": journals,
            "PapersPresented": papers,
            "totalPublications": journals + books + papers,
            "recentActivities": recent_activities({"teacher_id": teacher_id}),
            "quickCounts": quick_counts,
            "researchSummary": research_summary,
        }), 200
    except PyMongoError as e:
        return db_error_response(e, "load teacher dashboard")


INDEX_SOURCES = {
    "journals": "publication/journals",
    "books": "publication/books",
    "papers": "publication/papers",
    "projects": "research",
}


@app.route('/api/teacher/research/research-indices', methods=['GET', 'OPTIONS'])
@login_required
def research_indices():
    teacher_id, error = resolve_teacher_id(request.args.get('teacherId'))
    if error:
        return error
    teacher = db.teachers.find_one({"Tid": teacher_id})
    if not teacher:
        return error_response("Teacher not found", 404)

    yearly = {}
    totals = {key: 0 for key in INDEX_SOURCES}
    for key, path in INDEX_SOURCES.items():
        spec = TEACHER_RECORDS[path]
        date_field = 'month_year' if path == 'publication/journals' else spec['date_field']
        for record in db[spec['collection']].find({"teacher_id": teacher_id}):
            totals[key] += 1
            year = record_year(record, date_field) or record_year(record, spec['date_field'])
            if year is None:
                continue
            yearly.setdefault(year, {k: 0 for k in INDEX_SOURCES})[key] += 1

    return jsonify({
        "success": True,
        "teacherId": teacher_id,
        "indices": {
            "h_index": teacher.get('H_INDEX'),
            "i10_index": teacher.get('i10_INDEX'),
            "citations": teacher.get('CITIATIONS'),
        },
        "yearly": [dict(counts, year=year) for year, counts in sorted(yearly.items())],
        "totals": totals,
    }), 200

# --- Department Records ---
def department_record_list(spec, dept_id, bounds=None):
    cursor = db[spec['collection']].find({spec['dept_key']: dept_id}).sort(
        [(spec['date_field'], DESCENDING), ("id", DESCENDING)])
    records = [serialize_record(r, spec['id_key']) for r in cursor]
    if bounds:
        start, end = bounds
        records = [r for r in records if r.get(spec['date_field']) and start <= r[spec['date_field']] <= end]
    return attach_lookup_names(spec, records)


def register_department_record_routes(path, spec):
    """Wire GET/POST/PUT/DELETE for one department record kind."""
    collection_name = spec['collection']
    dept_key = spec['dept_key']
    id_key = spec['id_key']
    label = spec['label']
    doc_field = spec.get('doc_field')

    def handler():
        if request.method == 'GET':
            dept_id, error = resolve_dept_id(request.args.get('deptId') or request.args.get(dept_key))
            if error:
                return error
            try:
                records = department_record_list(spec, dept_id)
            except PyMongoError as e:
                return db_error_response(e, f"fetch {label.lower()} records")
            return cache_response(jsonify({"success": True, spec['list_key']: records}), 120), 200

        if request.method == 'DELETE':
            dept_id, error = resolve_dept_id(request.args.get('deptId') or request.args.get(dept_key), write=True)
            if error:
                return error
            record_id = parse_int(request.args.get('id') or request.args.get(id_key))
            if record_id is None:
                return error_response(f"{id_key} is required", 400)
            existing = db[collection_name].find_one_and_delete({"id": record_id, dept_key: dept_id})
            if not existing:
                return error_response(f"{label} not found", 404)
            if doc_field:
                discard_document(existing.get(doc_field))
            log_activity('DELETE', label, record_id, dept_id=dept_id)
            return jsonify({"success": True, "message": f"{label} deleted successfully"}), 200

        data = get_json_body()
        if parse_int(data.get(dept_key)) is None:
            return error_response("Valid department ID is required", 400)
        dept_id, error = resolve_dept_id(data.get(dept_key), write=True)
        if error:
            return error
        is_valid, error_msg, validated = validate_record(spec, data, lookup_exists, spec['required_messages'])
        if not is_valid:
            return error_response(error_msg, 400)

        try:
            if request.method == 'POST':
                new_id = next_id(collection_name)
                db[collection_name].insert_one(dict(validated, id=new_id, created_at=now_utc(), **{dept_key: dept_id}))
                log_activity('CREATE', label, new_id, dept_id=dept_id)
                return jsonify({"success": True, "message": f"{label} added successfully", id_key: new_id}), 201

            record_id = parse_int(data.get(id_key))
            if record_id is None:
                return error_response(f"{id_key} is required", 400)
            existing = db[collection_name].find_one({"id": record_id, dept_key: dept_id})
            if not existing:
                return error_response(f"{label} not found", 404)
            if doc_field and doc_field in validated and existing.get(doc_field) \
                    and existing[doc_field] != validated[doc_field]:
                discard_document(existing[doc_field])
            db[collection_name].update_one({"_id": existing['_id']}, {"$set": dict(validated, updated_at=now_utc())})
            log_activity('UPDATE', label, record_id, dept_id=dept_id)
            return jsonify({"success": True, "message": f"{label} updated successfully", id_key: record_id}), 200
        except PyMongoError as e:
            return db_error_response(e, f"save {label.lower()}")

    handler.__name__ = "department_" + re.sub(r'[^a-z0-9]+', '_', path.lower())
    app.add_url_rule(f'/api/department/{path}', view_func=login_required(handler),
                     methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'])


for _path, _spec in DEPARTMENT_RECORDS.items():
    register_department_record_routes(_path, _spec)


@app.route('/api/department/profile', methods=['GET', 'POST', 'PUT', 'OPTIONS'])
@login_required
def department_profile():
    if request.method == 'GET':
        dept_id, error = resolve_dept_id(request.args.get('deptId'))
        if error:
            return error
        query = {"deptid": dept_id}
        if request.args.get('year'):
            query['year'] = request.args['year'].strip()
        profile = db.dept_profiles.find_one(query, sort=[("year", DESCENDING)])
        return cache_response(jsonify({
            "success": True,
            "profile": serialize_record(profile) if profile else None
        }), 300), 200

    data = get_json_body()
    if parse_int(data.get('deptid')) is None:
        return error_response("Valid department ID is required", 400)
    dept_id, error = resolve_dept_id(data.get('deptid'), write=True)
    if error:
        return error
    year = str(data.get('year') or '').strip()
    if not year:
        return error_response("Year is required", 400)

    updates = {}
    for field in DEPARTMENT_PROFILE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'submit_date' and not is_blank(value):
            try:
                value = to_iso_date(value)
            except ValueError:
                return error_response("Invalid date for submit_date. Expected YYYY-MM-DD", 400)
        updates[field] = value.strip() if isinstance(value, str) else value

    try:
        result = db.dept_profiles.update_one(
            {"deptid": dept_id, "year": year},
            {"$set": dict(updates, updated_at=now_utc())},
            upsert=True
        )
        created = result.upserted_id is not None
        log_activity('CREATE' if created else 'UPDATE', 'Department Profile', f"{dept_id}:{year}", dept_id=dept_id)
        return jsonify({
            "success": True,
            "message": "Department profile saved successfully"
        }), 201 if created else 200
    except PyMongoError as e:
        return db_error_response(e, "save department profile")


def department_teacher_ids(dept_id):
    return [t['Tid'] for t in db.teachers.find({"deptid": dept_id}, {"Tid": 1})]


def count_department_records(path, dept_id):
    spec = DEPARTMENT_RECORDS[path]
    return db[spec['collection']].count_documents({spec['dept_key']: dept_id})


@app.route('/api/department/dashboard', methods=['GET', 'OPTIONS'])
@login_required
def department_dashboard():
    dept_id, error = resolve_dept_id(request.args.get('deptId'))
    if error:
        return error
    try:
        teacher_ids = department_teacher_ids(dept_id)
        awarded = lookup_id_by_name('phdGuidanceStatuses', 'Awarded')
        counts = {
            "TotalTeachers": len(teacher_ids),
            "AcademicPrograms": count_teacher_records('talks-events/academic-contri', teacher_ids),
            "AchievementsAwards": count_teacher_records('awards-recognition/awards-fellow', teacher_ids),
            "Collaborations": count_teacher_records('research-contributions/collaborations', teacher_ids),
            "Consultancy": count_teacher_records('research-contributions/consultancy', teacher_ids),
            "Events": count_department_records('events/dept-events', dept_id),
            "ExtensionActivities": count_teacher_records('awards-recognition/extensions', teacher_ids),
            "FacultyDevelopmentPrograms": count_teacher_records('talks-events/refresher-details', teacher_ids),
            "PhDAwarded": db.phd_guidance.count_documents({"teacher_id": {"$in": teacher_ids}, "status": awarded}),
            "Placements": count_department_records('placements', dept_id),
            "Scholarships": count_department_records('scholarships', dept_id),
            "StudentActivities": (count_department_records('events/student-academic-activities', dept_id)
                                  + count_department_records('events/student-body-events', dept_id)),
            "TechnologyDetails": count_teacher_records('research-contributions/patents', teacher_ids),
            "VisitingFaculty": count_teacher_records('research-contributions/visits', teacher_ids),
        }

        department = db.departments.find_one({"Deptid": dept_id})
        faculty = db.faculties.find_one({"Fid": department.get('Fid')})
        profile = db.dept_profiles.find_one({"deptid": dept_id}, sort=[("year", DESCENDING)])
        department_info = {
            "Deptid": dept_id,
            "name": department.get('name'),
            "faculty": {"Fid": faculty['Fid'], "Fname": faculty['Fname']} if faculty else None,
            "latestProfileYear": profile.get('year') if profile else None,
        }

        return cache_response(jsonify({
            "success": True,
            "dashboardCounts": counts,
            "departmentInfo": department_info,
            "recentActivities": recent_activities({"dept_id": dept_id}),
        }), 120), 200
    except PyMongoError as e:
        return db_error_response(e, "load department dashboard")

# --- Annual Report (Word) ---
def academic_year_bounds(year):
    """'2024-25' -> June 2024 to May 2025; '2024' -> the calendar year."""
    if not year:
        return None
    match = re.fullmatch(r'(\d{4})(?:\s*-\s*(\d{2}|\d{4}))?', year.strip())
    if not match:
        raise ValueError(f"Invalid year: {year}")
    start = int(match.group(1))
    if match.group(2):
        end = match.group(2)
        expected = str(start + 1) if len(end) == 4 else f"{(start + 1) % 100:02d}"
        if end != expected:
            raise ValueError(f"Invalid academic year: {year}")
        return f"{start}-06-01", f"{start + 1}-05-31"
    return f"{start}-01-01", f"{start}-12-31"


def style_report_document(doc):
    style = doc.styles['Normal']
    style.font.name = 'Calibri'
    style.font.size = Pt(11)

    h1 = doc.styles['Heading 1']
    h1.font.name = 'Calibri'
    h1.font.size = Pt(16)
    h1.font.bold = True
    h1.font.color.rgb = RGBColor(0x1F, 0x3A, 0x93)

    h2 = doc.styles['Heading 2']
    h2.font.name = 'Calibri'
    h2.font.size = Pt(13)
    h2.font.bold = True
    h2.font.color.rgb = RGBColor(0x37, 0x41, 0x51)


def add_report_table(doc, headers, rows):
    if not rows:
        doc.add_paragraph().add_run("No records for this period.").italic = True
        return
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = 'Table Grid'
    for i, header in enumerate(headers):
        cell = table.rows[0].cells[i]
        cell.text = header
        for run in cell.paragraphs[0].runs:
            run.bold = True
    for row in rows:
        cells = table.add_row().cells
        for i, value in enumerate(row):
            cells[i].text = "" if value is None else str(value)
    doc.add_paragraph()


REPORT_SECTIONS = [
    ("Department Events", 'events/dept-events',
     [("Event", 'ename'), ("Date", 'date'), ("Place", 'place'), ("Speaker", 'speaker_name'),
      ("Participants", 'No_Participant')]),
    ("Student Academic Activities", 'events/student-academic-activities',
     [("Activity", 'activity'), ("Date", 'date'), ("Place", 'place'), ("Participants", 'participatants_num')]),
    ("Student Body Events", 'events/student-body-events',
     [("Title", 'title'), ("Level", 'level_name'), ("Date", 'date'), ("Place", 'place'),
      ("Participants", 'participants_num')]),
    ("Funding Received", 'profile/funding',
     [("Funding Agency", 'fundingAgency'), ("Date of Recognition", 'dateofRecog'),
      ("Funds Sanctioned", 'fundsSancttioned'), ("Details", 'details')]),
    ("Placements", 'placements',
     [("Company", 'company_name'), ("Students Placed", 'student_count'), ("Package (LPA)", 'package_lpa'),
      ("Date", 'date')]),
    ("Scholarships", 'scholarships',
     [("Scheme", 'scheme_name'), ("Sponsor", 'sponsor'), ("Beneficiaries", 'beneficiaries'),
      ("Amount", 'amount')]),
]


@app.route('/api/department/annual-report', methods=['GET', 'OPTIONS'])
@login_required
def department_annual_report():
    dept_id, error = resolve_dept_id(request.args.get('deptId'))
    if error:
        return error
    year = (request.args.get('year') or '').strip()
    try:
        bounds = academic_year_bounds(year)
    except ValueError as e:
        return error_response(str(e), 400)

    try:
        department = db.departments.find_one({"Deptid": dept_id})
        faculty = db.faculties.find_one({"Fid": department.get('Fid')}) or {}
        profile_query = {"deptid": dept_id}
        if year:
            profile_query['year'] = year
        profile = db.dept_profiles.find_one(profile_query, sort=[("year", DESCENDING)]) or {}

        doc = Document()
        style_report_document(doc)

        title = doc.add_heading("Annual Report", level=1)
        title.alignment = WD_ALIGN_PARAGRAPH.CENTER
        for line in [f"Department of {department['name']}", faculty.get('Fname'), cv_builder.INSTITUTION_NAME,
                     f"Academic Year: {year}" if year else None]:
            if line:
                p = doc.add_paragraph(line)
                p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        generated = doc.add_paragraph(f"Generated on {datetime.now(IST).strftime('%d/%m/%Y %I:%M %p')} IST")
        generated.alignment = WD_ALIGN_PARAGRAPH.CENTER

        doc.add_heading("Department Profile", level=2)
        profile_sections = [("Introduction", 'intro'), ("Examination Reforms", 'exam_reforms'),
                            ("Innovative Processes", 'innovative_processes'), ("Library", 'dept_lib'),
                            ("Laboratories", 'dept_lab')]
        if not any(profile.get(field) for _, field in profile_sections):
            doc.add_paragraph("No profile submitted for this period.")
        for heading, field in profile_sections:
            if profile.get(field):
                p = doc.add_paragraph()
                p.add_run(f"{heading}: ").bold = True
                p.add_run(str(profile[field]))

        for heading, path, columns in REPORT_SECTIONS:
            doc.add_heading(heading, level=2)
            records = department_record_list(DEPARTMENT_RECORDS[path], dept_id, bounds)
            add_report_table(doc, [c[0] for c in columns], [[r.get(c[1]) for c in columns] for r in records])

        doc.add_heading("Faculty Contributions", level=2)
        rows = []
        for teacher in db.teachers.find({"deptid": dept_id}).sort("fname", ASCENDING):
            row = [teacher_full_name(teacher)]
            for path in ['publication/journals', 'publication/books', 'publication/papers', 'research',
                         'research-contributions/patents']:
                spec = TEACHER_RECORDS[path]
                records = db[spec['collection']].find({"teacher_id": teacher['Tid']})
                if bounds:
                    start, end = bounds
                    row.append(sum(1 for r in records if start <= str(r.get(spec['date_field']) or '') <= end))
                else:
                    row.append(sum(1 for _ in records))
            rows.append(row)
        add_report_table(doc, ["Teacher", "Journal Articles", "Books", "Papers", "Projects", "Patents"], rows)

        output = BytesIO()
        doc.save(output)
        output.seek(0)
    except PyMongoError as e:
        return db_error_response(e, "generate annual report")

    log_activity('EXPORT', 'Annual Report', f"{dept_id}:{year}", dept_id=dept_id)
    safe_name = re.sub(r'\s+', '_', department['name'])
    filename = f"Annual_Report_{safe_name}_{year or 'all'}.docx"
    return Response(
        output.read(),
        mimetype='application/vnd.openxmlformats-officedocument.wordprocessingml.document',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )

# --- Teacher Export (Excel) ---
@app.route('/api/department/teachers/export', methods=['GET', 'OPTIONS'])
@login_required
def export_department_teachers():
    dept_id, error = resolve_dept_id(request.args.get('deptId'))
    if error:
        return error

    try:
        department = db.departments.find_one({"Deptid": dept_id})
        teachers = {t['Tid']: t for t in db.teachers.find({"deptid": dept_id})}
        names = {tid: teacher_full_name(t) for tid, t in teachers.items()}

        summary = []
        for tid, teacher in teachers.items():
            row = {"Teacher ID": tid, "Name": names[tid], "Email": teacher.get('email_id')}
            for path, spec in TEACHER_RECORDS.items():
                row[spec['label'] if path.split('/')[0] != 'academic-recommendations'
                    else f"Recommended {spec['label']}"] = count_teacher_records(path, tid)
            summary.append(row)

        output = BytesIO()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            pd.DataFrame(summary, columns=["Teacher ID", "Name", "Email"] if not summary else None).to_excel(
                writer, index=False, sheet_name='Summary')

            used = {'Summary'}
            for path, spec in TEACHER_RECORDS.items():
                records = attach_lookup_names(spec, [
                    serialize_record(r) for r in db[spec['collection']].find({"teacher_id": {"$in": list(teachers)}})
                ])
                if not records:
                    continue
                for record in records:
                    record['teacher_name'] = names.get(record.get('teacher_id'))
                    record.pop('created_at', None)
                    record.pop('updated_at', None)
                df = pd.DataFrame(records)
                front = [c for c in ['teacher_name', 'id'] if c in df.columns]
                df = df[front + [c for c in df.columns if c not in front]]

                sheet = re.sub(r'[\[\]:*?/\\]', ' ', path.split('/')[-1].replace('-', ' ').title())[:31]
                if sheet in used:
                    sheet = f"Rec {sheet}"[:31]
                used.add(sheet)
                df.to_excel(writer, index=False, sheet_name=sheet)
        output.seek(0)
    except PyMongoError as e:
        return db_error_response(e, "export teacher data")

    log_activity('EXPORT', 'Teacher Data', dept_id, dept_id=dept_id)
    filename = f"Teachers_{re.sub(r'[^A-Za-z0-9]+', '_', department['name'])}.xlsx"
    return Response(
        output.read(),
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )


# --- Documents ---
DOCUMENT_ACTIONS = ['upload', 'download', 'delete', 'get-signed-url']


def can_manage_document(grid_file):
    if session.get('user_type') == 'admin':
        return True
    return (grid_file.metadata or {}).get('uploaded_by') == session.get('user_id')


def handle_document_upload():
    file = request.files.get('file')
    if not file or not file.filename:
        return error_response("No file provided", 400)
    folder = sanitize_folder(request.form.get('folder'))
    if not folder:
        return error_response("Folder is required", 400)

    user_id = (request.form.get('userId') or '').strip()
    if user_id and session.get('user_type') == 'teacher' and parse_int(user_id) != session.get('role_id'):
        return error_response("Forbidden - User ID mismatch", 403)

    ext = os.path.splitext(file.filename)[1].lower().lstrip('.')
    data = file.read()
    error_msg = validate_document(ext, file.mimetype, data)
    if error_msg:
        return error_response(error_msg, 400)

    try:
        filename = build_document_filename(
            ext, folder,
            user_id=user_id or None,
            record_id=(request.form.get('recordId') or '').strip() or None,
            email=(request.form.get('email') or '').strip() or None,
            file_num=(request.form.get('fileNum') or '').strip() or None,
            metric=(request.form.get('metric') or '').strip() or None,
        )
    except ValueError as e:
        return error_response(str(e), 400)

    virtual_path = f"upload/{folder}/{filename}"
    if not is_valid_virtual_path(virtual_path):
        return error_response("Invalid virtual path", 400)

    try:
        store_document(virtual_path, data, file.mimetype.lower())
    except PyMongoError as e:
        return db_error_response(e, "upload document")
    log_activity('UPLOAD', folder, virtual_path)
    return jsonify({
        "success": True,
        "message": "File uploaded successfully",
        "virtualPath": virtual_path,
        "fileName": filename
    }), 200


@app.route('/api/documents/<action>', methods=['POST', 'OPTIONS'])
@login_required
def document_action(action):
    if action not in DOCUMENT_ACTIONS:
        return error_response(f"Invalid action: {action}. Valid actions are: {', '.join(DOCUMENT_ACTIONS)}", 400)
    if action == 'upload':
        return handle_document_upload()

    virtual_path = str(get_json_body().get('virtualPath') or '').strip()
    if not is_valid_virtual_path(virtual_path):
        return error_response("Invalid virtual path", 400)

    grid_file = load_document(virtual_path)
    if not grid_file:
        return error_response("File not found", 404)

    if action == 'download':
        return document_response(grid_file, as_attachment=True)

    if action == 'delete':
        if not can_manage_document(grid_file):
            return error_response("Forbidden", 403)
        delete_stored_document(virtual_path)
        log_activity('DELETE_FILE', virtual_path.split('/')[1], virtual_path)
        return jsonify({"success": True, "message": "File deleted successfully"}), 200

    token = get_serializer().dumps({"path": virtual_path}, salt='document-url')
    return jsonify({
        "success": True,
        "signedUrl": url_for('signed_document', token=token, _external=True),
        "expiresIn": SIGNED_URL_MAX_AGE
    }), 200


@app.route('/api/documents/file', methods=['GET', 'OPTIONS'])
@login_required
def get_document_file():
    virtual_path = (request.args.get('path') or '').strip()
    if not is_valid_virtual_path(virtual_path):
        return error_response("Invalid virtual path", 400)
    grid_file = load_document(virtual_path)
    if not grid_file:
        return error_response("File not found", 404)
    return document_response(grid_file)


@app.route('/api/documents/signed', methods=['GET'])
def signed_document():
    token = request.args.get('token') or ''
    try:
        payload = get_serializer().loads(token, salt='document-url', max_age=SIGNED_URL_MAX_AGE)
    except SignatureExpired:
        return error_response("Link has expired", 403)
    except BadSignature:
        return error_response("Invalid link", 403)
    grid_file = load_document(payload.get('path', ''))
    if not grid_file:
        return error_response("File not found", 404)
    return document_response(grid_file)

# --- Document Auto-fill ---
def dropdowns_for_form(form_type):
    kind = TEACHER_RECORDS.get(autofill.FORM_TYPE_RECORD_KIND.get(form_type, ''))
    if not kind:
        return {}
    return {category: lookup_options(category) for category in set(kind.get('lookups', {}).values())}


def call_extraction_service(endpoint, file, form_data=None):
    """POST the uploaded file to the extraction service and return its JSON."""
    response = requests.post(
        f"{EXTRACTION_API_URL}{endpoint}",
        files={"file": (file.filename, file.stream, file.mimetype)},
        data=form_data or {},
        timeout=EXTRACTION_TIMEOUT
    )
    response.raise_for_status()
    return response.json()


@app.route('/api/llm/categorize-document', methods=['POST', 'OPTIONS'])
@app.route('/api/llm/get-category', methods=['POST', 'OPTIONS'])
@login_required
def categorize_document():
    file = request.files.get('file')
    if not file or not file.filename:
        return error_response("No file provided", 400)
    try:
        result = call_extraction_service('', file)
    except (requests.RequestException, ValueError) as e:
        print(f"❌ Extraction service error: {e}")
        return error_response("Document extraction service unavailable", 502)

    category = result.get('category')
    sub_category = result.get('subCategory') or result.get('sub_category')
    form_type = autofill.get_form_type(category, sub_category)
    return jsonify({
        "success": True,
        "category": category,
        "subCategory": sub_category,
        "formType": form_type,
        "recordKind": autofill.FORM_TYPE_RECORD_KIND.get(form_type),
        "data": result
    }), 200


@app.route('/api/llm/get-formfields', methods=['POST', 'OPTIONS'])
@login_required
def get_form_fields():
    file = request.files.get('file')
    if not file or not file.filename:
        return error_response("No file provided", 400)
    form_type = (request.form.get('type') or request.form.get('formType') or '').strip()
    if not form_type:
        form_type = autofill.get_form_type(request.form.get('category'), request.form.get('subCategory')) or ''
    if form_type not in autofill.FORM_TYPE_RECORD_KIND:
        return error_response("Unknown form type", 400)

    try:
        result = call_extraction_service('/targeted', file, {"type": form_type})
    except (requests.RequestException, ValueError) as e:
        print(f"❌ Extraction service error: {e}")
        return error_response("Document extraction service unavailable", 502)

    extracted = result.get('data') or result.get('fields') or {}
    if not isinstance(extracted, dict):
        return error_response("Invalid response from extraction service", 502)
    values, unmapped = autofill.map_extracted_fields(form_type, extracted, dropdowns_for_form(form_type))
    return jsonify({
        "success": True,
        "formType": form_type,
        "fields": values,
        "unmapped": unmapped,
        "extracted": extracted
    }), 200


@app.route('/api/llm/map-fields', methods=['POST', 'OPTIONS'])
@login_required
def map_fields():
    data = get_json_body()
    form_type = data.get('formType') or ''
    extracted = data.get('fields')
    if form_type not in autofill.FORM_TYPE_RECORD_KIND:
        return error_response("Unknown form type", 400)
    if not isinstance(extracted, dict):
        return error_response("fields must be an object", 400)
    values, unmapped = autofill.map_extracted_fields(form_type, extracted, dropdowns_for_form(form_type))
    return jsonify({"success": True, "formType": form_type, "fields": values, "unmapped": unmapped}), 200

# --- CV Generation ---
CV_SECTION_SOURCES = {
    "education": ('profile', 'graduation'),
    "postdoc": ('profile', 'phd-research'),
    "experience": ('profile', 'experience'),
    "research": ('record', 'research'),
    "patents": ('record', 'research-contributions/patents'),
    "econtent": ('record', 'research-contributions/e-content'),
    "consultancy": ('record', 'research-contributions/consultancy'),
    "collaborations": ('record', 'research-contributions/collaborations'),
    "phdguidance": ('record', 'research-contributions/phd-guidance'),
    "books": ('record', 'publication/books'),
    "papers": ('record', 'publication/papers'),
    "articles": ('record', 'publication/journals'),
    "awards": ('record', 'awards-recognition/awards-fellow'),
    "talks": ('record', 'talks-events/teacher-talks'),
    "academic_contribution": ('record', 'talks-events/academic-contri'),
    "academic_participation": ('record', 'talks-events/acad-bodies-parti'),
    "committees": ('record', 'talks-events/parti-university-committes'),
    "performance": ('record', 'awards-recognition/performance-teacher'),
    "extension": ('record', 'awards-recognition/extensions'),
    "orientation": ('record', 'talks-events/refresher-details'),
}


def fetch_cv_data(teacher_id, sections):
    teacher = db.teachers.find_one({"Tid": teacher_id})
    if not teacher:
        return None
    department, faculty, designation = teacher_context(teacher)
    cv_data = {"personal": {
        "name": teacher_full_name(teacher),
        "designation": designation,
        "department": department,
        "faculty": faculty,
        "institution": cv_builder.INSTITUTION_NAME,
        "email": teacher.get('email_id'),
        "phone": teacher.get('phone_no'),
        "dateOfBirth": teacher.get('DOB'),
        "orcid": teacher.get('ORCHID_ID'),
        "scholarLink": teacher.get('Google_Scholar_Link'),
        "scopusLink": teacher.get('Scopus_Link'),
    }}
    for section in sections:
        source, key = CV_SECTION_SOURCES[section]
        if source == 'profile':
            cv_data[section] = profile_records(key, teacher_id)
        else:
            cv_data[section] = teacher_record_list(TEACHER_RECORDS[key], teacher_id)
    return cv_data


@app.route('/api/teacher/cv-generation', methods=['POST', 'OPTIONS'])
@login_required
def generate_cv():
    data = get_json_body()
    template = data.get('template')
    output_format = data.get('format')
    sections = data.get('selectedSections') or []

    if template not in cv_builder.CV_TEMPLATES:
        return error_response(f"Invalid template. Must be one of: {', '.join(cv_builder.CV_TEMPLATES)}", 400)
    if output_format not in cv_builder.CV_FORMATS:
        return error_response("Invalid format. Must be 'word' or 'pdf'", 400)
    if not isinstance(sections, list) or not sections:
        return error_response("At least one section must be selected", 400)
    unknown = [s for s in sections if not isinstance(s, str) or s not in CV_SECTION_SOURCES]
    if unknown:
        return error_response(f"Unknown sections: {', '.join(map(str, unknown))}", 400)

    teacher_id, error = resolve_teacher_id(data.get('teacherId'))
    if error:
        return error

    try:
        cv_data = fetch_cv_data(teacher_id, sections)
    except PyMongoError as e:
        return db_error_response(e, "collect CV data")
    if cv_data is None:
        return error_response("Teacher not found", 404)
    if not cv_data['personal']['name']:
        return error_response("Personal information is required", 400)

    try:
        if output_format == 'pdf':
            buffer = cv_builder.build_cv_pdf(cv_data, template, sections)
            mimetype, extension = 'application/pdf', 'pdf'
        else:
            buffer = cv_builder.build_cv_docx(cv_data, template, sections)
            mimetype = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
            extension = 'docx'
    except Exception as e:
        print(f"❌ Error generating CV: {e}")
        return error_response(f"Failed to generate CV: {str(e)}", 500)

    log_activity('EXPORT', 'CV', teacher_id, teacher_id=teacher_id)
    return send_file(
        buffer,
        mimetype=mimetype,
        as_attachment=True,
        download_name=cv_builder.cv_filename(cv_data['personal']['name'], template, extension)
    )


@app.route('/api/teacher/publication-certificate', methods=['POST', 'OPTIONS'])
@login_required
def publication_certificate():
    data = get_json_body()
    teacher_info = data.get('teacherInfo')
    articles = data.get('selectedArticles')
    papers = data.get('selectedPapers')
    user_name = data.get('userName')

    if (not isinstance(teacher_info, dict) or not user_name
            or not isinstance(articles, list) or not isinstance(papers, list)):
        return error_response("Missing required data", 400)
    if not articles and not papers:
        return error_response("No publications selected", 400)
    if not all(isinstance(item, dict) for item in articles + papers):
        return error_response("Selected publications must be objects", 400)

    try:
        buffer = cv_builder.build_publication_certificate(teacher_info, articles, papers, user_name)
    except Exception as e:
        print(f"❌ Error generating certificate: {e}")
        return error_response(f"Failed to generate certificate: {str(e)}", 500)

    safe_name = re.sub(r'\s+', '_', (teacher_info.get('name') or 'Teacher').strip())
    return send_file(
        buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"Publication_Certificate_{safe_name}.pdf"
    )

# --- Mail ---
@app.route('/api/send-mail', methods=['POST', 'OPTIONS'])
@login_required
def send_mail():
    data = get_json_body()
    to_email = (data.get('to') or '').strip()
    subject = (data.get('subject') or '').strip()
    text = data.get('text') or ''
    if not to_email or not subject or not text:
        return error_response("to, subject and text are required", 400)
    if not send_email(to_email, subject, text):
        return error_response("Email sending failed", 500)
    log_activity('SEND_MAIL', 'Mail', to_email)
    return jsonify({"success": True, "message": "Email sent successfully"}), 200


if __name__ == '__main__':
    if not bootstrap_database():
        sys.exit(1)
    port = int(os.environ.get('PORT', '5001'))
    app.run(host='0.0.0.0', port=port)

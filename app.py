"""Flask web application for the Madhubani Nikah matrimony backend."""

import logging
import os
from functools import wraps

from flask import Flask, g, jsonify, request, session
from sqlalchemy import select
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from config import DATABASE_URL, LOG_LEVEL, SECRET_KEY
from nikah.ai import ExplainMatchInput, ProfileSuggestionsInput, explain_match, generate_profile_suggestions
from nikah.db import Database
from nikah.errors import AuthenticationError, NikahError, PermissionDeniedError, reshape_error, status_for
from nikah.models import Account, Role
from nikah.models.profile import STAFF_ROLES
from nikah.pagination import PaginationOptions
from nikah.services import (
    CompatibilityService,
    ContentService,
    InterestService,
    ModerationService,
    NotificationService,
    ProfileService,
    RecommendationService,
    StatusService,
    VerificationService,
)
from nikah.services.interest_service import InterestFilters
from nikah.services.moderation_service import ReportFilters
from nikah.services.notification_service import NotificationFilters
from nikah.services.profile_service import SearchFilters, opposite_gender
from nikah.services.recommendation_service import RecommendationFilters
from nikah.validation import (
    BulkModerationRequest,
    ContentCreateRequest,
    ContentUpdateRequest,
    FeedbackRequest,
    InteractionRequest,
    InterestRequest,
    InterestResponseRequest,
    LoginRequest,
    ModerationActionRequest,
    ProfileCreateRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    ReportRequest,
    SearchRequest,
    VerificationReviewRequest,
    VerificationSubmitRequest,
    VisibilityRequest,
    sanitize_search_query,
    validate_payload,
)

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SECRET_KEY'] = SECRET_KEY
app.config['DATABASE_URL'] = DATABASE_URL
# Set to a Database instance to bypass DATABASE_URL (tests use sqlite://)
app.config['DATABASE'] = None
# Optional LLM client shared by the AI endpoints; None uses LLMService.get_instance()
app.config['LLM_SERVICE'] = None


def get_database() -> Database:
    """Database for this app, created and migrated on first use."""
    database = app.config.get('DATABASE')
    if database is None:
        database = Database(app.config['DATABASE_URL'])
        database.create_all()
        app.config['DATABASE'] = database
    return database


def db_session():
    """One session per request, closed on teardown."""
    if 'db_session' not in g:
        g.db_session = get_database().session()
    return g.db_session


@app.teardown_appcontext
def close_db_session(exc):
    db = g.pop('db_session', None)
    if db is not None:
        if exc is not None:
            db.rollback()
        db.close()


@app.errorhandler(Exception)
def handle_error(error):
    """Every failure leaves as the toast payload with its mapped status."""
    if isinstance(error, HTTPException):
        return jsonify({'error': error.description, 'type': 'http_error'}), error.code
    db = g.get('db_session')
    if db is not None:
        db.rollback()
    payload = reshape_error(error)
    status = status_for(error)
    if status >= 500:
        logger.error("[api] %s %s failed: %s", request.method, request.path, error)
    return jsonify(payload), status


def current_user_id() -> str:
    return session['user_id']


def current_role() -> str:
    return session.get('role', Role.USER.value)


def login_required(f):
    """Decorator to require login for API endpoints."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('user_id'):
            raise AuthenticationError('Authentication required')
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to restrict an endpoint to moderators and admins."""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if current_role() not in STAFF_ROLES:
            raise PermissionDeniedError('Admin access required')
        return f(*args, **kwargs)
    return decorated_function


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def pagination_from_request(default_order: str | None = None) -> PaginationOptions:
    return PaginationOptions(
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 25, type=int),
        order_by=request.args.get('order_by', default_order),
        order_direction=request.args.get('order_direction', 'desc'),
    )


def _notifications():
    return NotificationService(db_session())


def _profiles():
    return ProfileService(db_session())


def _interests():
    return InterestService(db_session())


def _compatibility():
    return CompatibilityService(db_session(), llm_service=app.config.get('LLM_SERVICE'))


def _recommendations():
    return RecommendationService(db_session(), compatibility=_compatibility())


# ============================================================================
# Auth
# ============================================================================

@app.route('/api/auth/register', methods=['POST'])
def register():
    """Create an account and log it in."""
    data = validate_payload(RegisterRequest, json_body())
    db = db_session()
    if db.scalars(select(Account).where(Account.email == data.email)).first() is not None:
        return jsonify({'error': 'An account with this email already exists'}), 409

    account = Account(email=data.email, name=data.name, password_hash=generate_password_hash(data.password))
    db.add(account)
    db.commit()
    session['user_id'] = account.id
    session['role'] = account.role
    session.permanent = True
    logger.info("[auth] registered user=%s", account.id)
    return jsonify({'success': True, 'user': account.to_dict()}), 201


@app.route('/api/auth/login', methods=['POST'])
def login():
    """Handle login."""
    data = validate_payload(LoginRequest, json_body())
    account = db_session().scalars(select(Account).where(Account.email == data.email)).first()
    if account is None or not check_password_hash(account.password_hash, data.password):
        return jsonify({'error': 'Incorrect email or password'}), 401

    session['user_id'] = account.id
    session['role'] = account.role
    session.permanent = True
    StatusService(db_session()).track_activity(
        account.id, 'login', ip_address=request.remote_addr, user_agent=request.headers.get('User-Agent'),
    )
    return jsonify({'success': True, 'user': account.to_dict()})


@app.route('/api/auth/logout', methods=['POST'])
@login_required
def logout():
    """Handle logout."""
    StatusService(db_session()).track_activity(current_user_id(), 'logout')
    session.clear()
    return jsonify({'success': True})


@app.route('/api/auth/me')
@login_required
def me():
    account = db_session().get(Account, current_user_id())
    if account is None:
        session.clear()
        raise AuthenticationError('Account no longer exists')
    profile = _profiles().get_profile(account.id)
    return jsonify({'user': account.to_dict(), 'profile': profile.to_dict() if profile else None})


# ============================================================================
# Profiles
# ============================================================================

@app.route('/api/profiles', methods=['POST'])
@login_required
def create_profile():
    data = validate_payload(ProfileCreateRequest, json_body())
    profile = _profiles().create_profile(current_user_id(), data)
    return jsonify({'success': True, 'profile': profile.to_dict()}), 201


@app.route('/api/profiles/me')
@login_required
def get_my_profile():
    profile = _profiles().require_profile(current_user_id())
    return jsonify({'profile': profile.to_dict()})


def _own_profile(profile_id: str):
    profiles = _profiles()
    profile = profiles.get_profile_by_id(profile_id)
    if profile is None or profile.user_id != current_user_id():
        raise PermissionDeniedError('You can only change your own profile')
    return profiles, profile


@app.route('/api/profiles/<profile_id>', methods=['GET'])
@login_required
def view_profile(profile_id):
    data = _profiles().view_profile(current_user_id(), profile_id, current_role())
    return jsonify({'profile': data})


@app.route('/api/profiles/<profile_id>', methods=['PUT'])
@login_required
def update_profile(profile_id):
    updates = validate_payload(ProfileUpdateRequest, json_body())
    profiles, _ = _own_profile(profile_id)
    profile = profiles.update_profile(current_user_id(), updates)
    return jsonify({'success': True, 'profile': profile.to_dict()})


@app.route('/api/profiles/<profile_id>', methods=['DELETE'])
@login_required
def delete_profile(profile_id):
    profiles, _ = _own_profile(profile_id)
    profiles.delete_profile(current_user_id())
    return jsonify({'success': True})


@app.route('/api/profiles/search', methods=['POST'])
@login_required
def search_profiles():
    data = validate_payload(SearchRequest, json_body())
    filters = SearchFilters(
        gender=data.gender,
        age_min=data.age_min,
        age_max=data.age_max,
        districts=data.districts,
        education_levels=data.education_levels,
        sects=data.sects,
        occupations=data.occupations,
        marital_status=data.marital_status,
        is_verified=data.is_verified,
        has_photo=data.has_photo,
        exclude_user_ids=[current_user_id()],
        limit=data.limit,
        offset=data.offset,
    )
    profiles = _profiles()
    if data.query:
        result = profiles.search_profiles_with_text(data.query, filters)
    else:
        result = profiles.search_profiles(filters)
    return jsonify(_search_response(profiles, result))


def _search_response(profiles: ProfileService, result) -> dict:
    """Public cards with photos only where the viewer may see them."""
    cards = []
    for p in result.profiles:
        permission = profiles.check_photo_permission(current_user_id(), p.user_id, current_role())
        cards.append(p.to_public_dict(show_photo=permission.can_view_original))
    return {'profiles': cards, 'total': result.total, 'has_more': result.has_more}


@app.route('/api/profiles/nearby')
@login_required
def nearby_profiles():
    """Members in a district, optionally with its neighbouring districts."""
    profiles = _profiles()
    own = profiles.require_profile(current_user_id())
    filters = SearchFilters(
        gender=opposite_gender(own.gender),
        exclude_user_ids=[current_user_id()],
        limit=request.args.get('limit', 20, type=int),
    )
    result = profiles.get_profiles_by_location(
        request.args.get('district') or own.district,
        include_nearby=request.args.get('nearby', 'true').lower() != 'false',
        filters=filters,
    )
    return jsonify(_search_response(profiles, result))


@app.route('/api/profiles/me/visibility', methods=['PUT'])
@login_required
def update_visibility():
    data = validate_payload(VisibilityRequest, json_body())
    profile = _profiles().update_visibility_settings(
        current_user_id(),
        profile_visibility=data.profile_visibility,
        is_photo_blurred=data.is_photo_blurred,
    )
    return jsonify({'success': True, 'profile': profile.to_dict()})


@app.route('/api/profiles/me/stats')
@login_required
def profile_stats():
    return jsonify(_profiles().get_profile_stats(current_user_id()))


@app.route('/api/profiles/<owner_user_id>/photo-permission')
@login_required
def photo_permission(owner_user_id):
    permission = _profiles().check_photo_permission(current_user_id(), owner_user_id, current_role())
    return jsonify({'can_view_original': permission.can_view_original, 'reason': permission.reason})


@app.route('/api/profiles/me/suggestions', methods=['POST'])
@login_required
def profile_suggestions():
    """AI tips for improving the member's own profile."""
    profile = _profiles().require_profile(current_user_id())
    details = ', '.join(
        f"{key}: {value}" for key, value in profile.to_ai_dict().items() if value not in (None, '', [])
    )
    result = generate_profile_suggestions(
        ProfileSuggestionsInput(profile_details=details), llm=app.config.get('LLM_SERVICE'),
    )
    return jsonify({'success': True, 'suggestions': result.suggestions})


# ============================================================================
# Interests
# ============================================================================

@app.route('/api/interests', methods=['POST'])
@login_required
def send_interest():
    data = validate_payload(InterestRequest, json_body())
    interest = _interests().send_interest(current_user_id(), data.receiver_id, type=data.type, message=data.message)
    return jsonify({'success': True, 'interest': interest.to_dict()}), 201


@app.route('/api/interests/<interest_id>', methods=['PUT'])
@login_required
def respond_to_interest(interest_id):
    data = validate_payload(InterestResponseRequest, json_body())
    interest = _interests().respond_to_interest(current_user_id(), interest_id, data.response)
    return jsonify({'success': True, 'interest': interest.to_dict()})


@app.route('/api/interests/<interest_id>', methods=['DELETE'])
@login_required
def withdraw_interest(interest_id):
    interest = _interests().withdraw_interest(current_user_id(), interest_id)
    return jsonify({'success': True, 'interest': interest.to_dict()})


@app.route('/api/interests/<interest_id>', methods=['GET'])
@login_required
def get_interest(interest_id):
    return jsonify({'interest': _interests().get_interest(current_user_id(), interest_id).to_dict()})


@app.route('/api/interests/<interest_id>/read', methods=['POST'])
@login_required
def mark_interest_read(interest_id):
    interest = _interests().mark_interest_as_read(current_user_id(), interest_id)
    return jsonify({'success': True, 'interest': interest.to_dict()})


def _interest_filters() -> InterestFilters:
    return InterestFilters(
        status=request.args.getlist('status'),
        type=request.args.getlist('type'),
        limit=request.args.get('limit', 50, type=int),
        offset=request.args.get('offset', 0, type=int),
    )


@app.route('/api/interests/sent')
@login_required
def sent_interests():
    return jsonify(_interests().get_sent_interests(current_user_id(), _interest_filters()).to_dict())


@app.route('/api/interests/received')
@login_required
def received_interests():
    return jsonify(_interests().get_received_interests(current_user_id(), _interest_filters()).to_dict())


@app.route('/api/interests/mutual')
@login_required
def mutual_interests():
    mutual = _interests().get_mutual_interests(current_user_id())
    return jsonify({'mutual_interests': [
        {
            'interest_id': m.interest_id,
            'other_user_id': m.other_user_id,
            'matched_at': m.matched_at.isoformat() if m.matched_at else None,
            'contact_shared': m.contact_shared,
            'ai_match_score': m.ai_match_score,
        }
        for m in mutual
    ]})


@app.route('/api/interests/stats')
@login_required
def interest_stats():
    interests = _interests()
    stats = interests.get_interest_stats(current_user_id())
    stats['unread'] = interests.get_unread_interests_count(current_user_id())
    return jsonify(stats)


@app.route('/api/matches')
@login_required
def list_matches():
    matches = _interests().detector.get_matches(current_user_id())
    return jsonify({'matches': [m.to_dict() for m in matches]})


@app.route('/api/matches/check', methods=['POST'])
@login_required
def check_matches():
    """Create any mutual matches missed when an acceptance was recorded."""
    created = _interests().detector.check_user(current_user_id())
    return jsonify({'success': True, 'created': created})


# ============================================================================
# Notifications
# ============================================================================

@app.route('/api/notifications')
@login_required
def list_notifications():
    is_read = request.args.get('is_read')
    filters = NotificationFilters(
        types=request.args.getlist('type'),
        priorities=request.args.getlist('priority'),
        is_read=None if is_read is None else is_read.lower() == 'true',
        limit=request.args.get('limit', 20, type=int),
        offset=request.args.get('offset', 0, type=int),
    )
    return jsonify(_notifications().get_user_notifications(current_user_id(), filters).to_dict())


@app.route('/api/notifications/<notification_id>/read', methods=['POST'])
@login_required
def mark_notification_read(notification_id):
    notification = _notifications().mark_as_read(current_user_id(), notification_id)
    return jsonify({'success': True, 'notification': notification.to_dict()})


@app.route('/api/notifications/read-all', methods=['POST'])
@login_required
def mark_all_notifications_read():
    return jsonify({'success': True, 'updated': _notifications().mark_all_as_read(current_user_id())})


@app.route('/api/notifications/<notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id):
    _notifications().delete_notification(current_user_id(), notification_id)
    return jsonify({'success': True})


@app.route('/api/notifications/stats')
@login_required
def notification_stats():
    return jsonify(_notifications().get_notification_stats(current_user_id()))


# ============================================================================
# Recommendations & compatibility
# ============================================================================

@app.route('/api/recommendations')
@login_required
def recommendations():
    filters = RecommendationFilters(
        min_age=request.args.get('min_age', type=int),
        max_age=request.args.get('max_age', type=int),
        districts=request.args.getlist('district') or None,
        sects=request.args.getlist('sect') or None,
        verified_only=request.args.get('verified_only', 'false').lower() == 'true',
        has_photo_only=request.args.get('has_photo_only', 'false').lower() == 'true',
    )
    limit = request.args.get('limit', 20, type=int)
    recs = _recommendations().get_personalized_recommendations(current_user_id(), limit, filters)
    return jsonify({'recommendations': [r.to_dict() for r in recs]})


@app.route('/api/recommendations/cached')
@login_required
def cached_recommendations():
    max_age = request.args.get('max_age_hours', 24, type=int)
    recs = _recommendations().get_cached_recommendations(current_user_id(), max_age)
    return jsonify({'recommendations': [r.to_dict() for r in recs]})


@app.route('/api/recommendations/refresh', methods=['POST'])
@login_required
def refresh_recommendations():
    recs = _recommendations().refresh_recommendations(current_user_id())
    return jsonify({'recommendations': [r.to_dict() for r in recs]})


@app.route('/api/recommendations/trending')
@login_required
def trending_matches():
    profiles = _recommendations().get_trending_matches(current_user_id(), request.args.get('limit', 10, type=int))
    return jsonify({'profiles': [p.to_public_dict(show_photo=not p.is_photo_blurred) for p in profiles]})


@app.route('/api/recommendations/interactions', methods=['POST'])
@login_required
def record_interaction():
    data = validate_payload(InteractionRequest, json_body())
    _recommendations().record_user_interaction(
        current_user_id(), data.target_user_id, data.interaction_type, data.context_data,
    )
    return jsonify({'success': True})


@app.route('/api/recommendations/feedback', methods=['POST'])
@login_required
def record_feedback():
    data = validate_payload(FeedbackRequest, json_body())
    _recommendations().record_match_feedback(current_user_id(), data.match_user_id, data.feedback, data.reasons)
    return jsonify({'success': True})


@app.route('/api/compatibility/<candidate_user_id>')
@login_required
def compatibility(candidate_user_id):
    """Cached score when fresh, otherwise a new model call."""
    service = _compatibility()
    score = service.get_cached_compatibility(current_user_id(), candidate_user_id)
    if score is None:
        profiles = _profiles()
        user = profiles.require_profile(current_user_id())
        candidate = profiles.require_profile(candidate_user_id)
        score = service.calculate_profile_compatibility(user, candidate)
    return jsonify({'compatibility': score.to_dict()})


@app.route('/api/compatibility/<candidate_user_id>/explain')
@login_required
def explain(candidate_user_id):
    profiles = _profiles()
    user = profiles.require_profile(current_user_id())
    candidate = profiles.require_profile(candidate_user_id)
    result = explain_match(
        ExplainMatchInput(user_profile=str(user.to_ai_dict()), match_profile=str(candidate.to_ai_dict())),
        llm=app.config.get('LLM_SERVICE'),
    )
    return jsonify({'explanation': result.explanation})


@app.route('/api/compatibility/analytics')
@login_required
def match_analytics():
    return jsonify(_compatibility().get_user_match_analytics(current_user_id()))


# ============================================================================
# Reports & moderation
# ============================================================================

@app.route('/api/reports', methods=['POST'])
@login_required
def submit_report():
    data = validate_payload(ReportRequest, json_body())
    report = ModerationService(db_session()).submit_report(current_user_id(), data)
    return jsonify({'success': True, 'report_id': report.id, 'priority': report.priority}), 201


@app.route('/api/admin/reports')
@admin_required
def list_reports():
    filters = ReportFilters(
        status=request.args.get('status'),
        category=request.args.get('category'),
        priority=request.args.get('priority'),
    )
    moderation = ModerationService(db_session())
    query = request.args.get('q')
    if query:
        reports = moderation.search_reports(sanitize_search_query(query))
        return jsonify({'data': [r.to_dict() for r in reports]})
    result = moderation.get_reports(filters, pagination_from_request('created_at'))
    return jsonify(result.to_dict(lambda r: r.to_dict()))


@app.route('/api/admin/reports/<report_id>')
@admin_required
def get_report(report_id):
    moderation = ModerationService(db_session())
    report = moderation.get_report(report_id)
    history = moderation.get_moderation_history(report_id)
    return jsonify({'report': report.to_dict(), 'history': [h.to_dict() for h in history]})


@app.route('/api/admin/reports/<report_id>/action', methods=['POST'])
@admin_required
def moderation_action(report_id):
    data = validate_payload(ModerationActionRequest, json_body())
    account = db_session().get(Account, current_user_id())
    report = ModerationService(db_session()).take_moderation_action(
        report_id,
        current_user_id(),
        data.action,
        data.resolution,
        notify_reporter=data.notify_reporter,
        notify_reported=data.notify_reported,
        suspension_duration=data.suspension_duration,
        moderator_name=account.name if account else '',
    )
    return jsonify({'success': True, 'report': report.to_dict()})


@app.route('/api/admin/reports/bulk', methods=['POST'])
@admin_required
def bulk_moderation():
    data = validate_payload(BulkModerationRequest, json_body())
    updated = ModerationService(db_session()).bulk_moderation_action(
        data.report_ids, data.action, current_user_id(), data.resolution,
    )
    return jsonify({'success': True, 'updated': updated})


@app.route('/api/admin/moderation/stats')
@admin_required
def moderation_stats():
    return jsonify(ModerationService(db_session()).get_moderation_stats())


@app.route('/api/admin/suspensions')
@admin_required
def list_suspensions():
    suspensions = ModerationService(db_session()).get_user_suspensions(request.args.get('user_id'))
    return jsonify({'suspensions': [s.to_dict() for s in suspensions]})


# ============================================================================
# Verification
# ============================================================================

@app.route('/api/verification', methods=['POST'])
@login_required
def submit_verification():
    data = validate_payload(VerificationSubmitRequest, json_body())
    req = VerificationService(db_session()).create_verification_request(
        current_user_id(), data.document_type, data.document_id,
    )
    return jsonify({'success': True, 'request': req.to_dict()}), 201


@app.route('/api/verification/status')
@login_required
def verification_status():
    return jsonify(VerificationService(db_session()).get_user_verification_status(current_user_id()))


@app.route('/api/admin/verification')
@admin_required
def pending_verifications():
    result = VerificationService(db_session()).list_pending_requests()
    return jsonify(result.to_dict(lambda r: r.to_dict()))


@app.route('/api/admin/verification/<request_id>', methods=['POST'])
@admin_required
def review_verification(request_id):
    data = validate_payload(VerificationReviewRequest, json_body())
    req = VerificationService(db_session()).review_verification_request(
        request_id, current_user_id(), data.decision, notes=data.notes, rejection_reason=data.rejection_reason,
    )
    return jsonify({'success': True, 'request': req.to_dict()})


@app.route('/api/admin/verification/stats')
@admin_required
def verification_stats():
    return jsonify(VerificationService(db_session()).get_verification_stats())


# ============================================================================
# Islamic content
# ============================================================================

@app.route('/api/content')
def list_content():
    content = ContentService(db_session())
    content_type = request.args.get('type')
    if request.args.get('random'):
        items = content.get_random_content(request.args.get('limit', 5, type=int))
    elif content_type:
        items = content.get_content_by_type(content_type)
    else:
        items = content.get_active_content()
    return jsonify({'content': [c.to_dict() for c in items]})


@app.route('/api/admin/content', methods=['POST'])
@admin_required
def create_content():
    data = validate_payload(ContentCreateRequest, json_body())
    item = ContentService(db_session()).create_content(data)
    return jsonify({'success': True, 'content': item.to_dict()}), 201


@app.route('/api/admin/content/<content_id>', methods=['PUT'])
@admin_required
def update_content(content_id):
    updates = validate_payload(ContentUpdateRequest, json_body()).model_dump(exclude_unset=True)
    is_active = updates.pop('is_active', None)
    content = ContentService(db_session())
    item = content.update_content(content_id, updates) if updates else content.get_content(content_id)
    if is_active is not None:
        item = content.toggle_content_status(content_id, is_active)
    return jsonify({'success': True, 'content': item.to_dict()})


@app.route('/api/admin/content/<content_id>', methods=['DELETE'])
@admin_required
def delete_content(content_id):
    ContentService(db_session()).delete_content(content_id)
    return jsonify({'success': True})


# ============================================================================
# Online status
# ============================================================================

@app.route('/api/status/heartbeat', methods=['POST'])
@login_required
def heartbeat():
    data = json_body()
    status = StatusService(db_session()).update_online_status(
        current_user_id(),
        bool(data.get('is_online', True)),
        data.get('current_activity'),
        session_id=data.get('session_id'),
        device_info=data.get('device_info'),
    )
    return jsonify({'success': True, 'status': status.to_dict()})


@app.route('/api/status/online')
@login_required
def online_users():
    return jsonify({'users': StatusService(db_session()).get_online_users(request.args.get('limit', 50, type=int))})


@app.route('/api/status/users', methods=['POST'])
@login_required
def user_statuses():
    user_ids = json_body().get('user_ids') or []
    statuses = StatusService(db_session()).get_multiple_user_statuses(user_ids)
    return jsonify({'statuses': [s.to_dict() for s in statuses]})


@app.route('/api/status/activity')
@login_required
def activity_history():
    status = StatusService(db_session())
    history = status.get_user_activity_history(
        current_user_id(), request.args.get('limit', 50, type=int), request.args.get('type'),
    )
    return jsonify({
        'activities': [a.to_dict() for a in history],
        'stats': status.get_user_activity_stats(current_user_id()),
    })


@app.route('/api/health')
def health():
    return jsonify({'status': 'ok'})


if __name__ == '__main__':
    if not os.environ.get('GEMINI_API_KEY') and not os.environ.get('GOOGLE_API_KEY') \
            and not os.environ.get('OPENAI_API_KEY'):
        logger.warning("No GEMINI_API_KEY, GOOGLE_API_KEY or OPENAI_API_KEY set; AI endpoints will fail")

    port = int(os.environ.get('PORT', 5000))
    app.run(debug=False, host='0.0.0.0', port=port)

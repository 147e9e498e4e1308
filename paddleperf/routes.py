from flask import Blueprint, abort, current_app, redirect, render_template, request, url_for
import math
import os
import time

from . import tiers
from .auth import (
    UserExistsError,
    authenticate_user,
    create_user,
    create_user_session,
    get_user_session,
    logout as auth_logout,
    require_user,
    safe_redirect_target,
)
from .datastore import (
    count_athlete_results as ds_count_athlete_results,
    count_disciplines as ds_count_disciplines,
    find_user_athlete_link as ds_find_user_athlete_link,
    get_athlete as ds_get_athlete,
    insert_user_athlete_link as ds_insert_user_athlete_link,
    list_athlete_results as ds_list_athlete_results,
    list_indexes as ds_list_indexes,
    list_recent_competitions as ds_list_recent_competitions,
    search_athletes as ds_search_athletes,
    server_info as ds_server_info,
)


bp = Blueprint('main', __name__)

# In-process cache for the dashboard competitions list
_DASHBOARD_CACHE: dict[int, tuple[float, list[dict]]] = {}
_DASHBOARD_TTL = int(os.environ.get('CACHE_TTL_DASHBOARD', '60'))  # seconds

RECENT_COMPETITIONS = 10

PLANS = [
    {
        'tier': 'free',
        'name': 'Free',
        'price': '$0',
        'period': 'forever',
        'features': [
            f"View up to {tiers.TIER_LIMITS['free']['athlete_views']} athlete profiles per day",
            'Basic race results',
            'Public athlete profiles only',
        ],
        'limitations': [
            'No performance comparisons',
            'No virtual series creation',
            'Limited historical data',
        ],
    },
    {
        'tier': 'premium',
        'name': 'Premium',
        'price': '$9',
        'period': 'month',
        'features': [
            'Unlimited athlete profile views',
            'Performance comparisons',
            f"Create up to {tiers.TIER_LIMITS['premium']['virtual_series']} virtual series",
            'Advanced analytics',
            'Export race data',
        ],
        'limitations': [],
        'popular': True,
    },
    {
        'tier': 'pro',
        'name': 'Pro',
        'price': '$29',
        'period': 'month',
        'features': [
            'Everything in Premium',
            'Unlimited virtual series',
            'Claim and verify athlete profiles',
            'Priority data corrections',
        ],
        'limitations': [],
    },
]


def _cache_get_competitions(limit: int) -> list[dict] | None:
    entry = _DASHBOARD_CACHE.get(limit)
    if not entry:
        return None
    exp, value = entry
    if exp < time.time():
        _DASHBOARD_CACHE.pop(limit, None)
        return None
    return value


def _cache_set_competitions(limit: int, value: list[dict]) -> None:
    _DASHBOARD_CACHE[limit] = (time.time() + _DASHBOARD_TTL, value)


def _cache_clear_all() -> None:
    _DASHBOARD_CACHE.clear()


@bp.app_context_processor
def _inject_user_session():
    return {'user_session': get_user_session()}


@bp.route('/health/db')
def health_db():
    """Database connectivity health check.

    Always returns HTTP 200 with a JSON body describing connection status and
    the number of seeded disciplines.
    """
    if not os.environ.get('DATABASE_URL'):
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set.',
        }
    try:
        info = ds_server_info()
        disciplines = ds_count_disciplines()
    except Exception as e:  # pragma: no cover - best-effort health output
        current_app.logger.exception('Database health check failed')
        return {'connected': False, 'status': 'error', 'error': str(e)}
    return {
        'connected': True,
        'status': 'ok',
        'user': info.get('user'),
        'database': info.get('database'),
        'server_version': info.get('server_version'),
        'disciplines': disciplines,
        'message': f'Database connected! Found {disciplines} disciplines.',
    }


# (label, table, accepted leading-column lists, suggested statement)
_RECOMMENDED_INDEXES = [
    ('user_activity(user_id,created_at)', 'user_activity', ['user_id, created_at'],
     'CREATE INDEX CONCURRENTLY IF NOT EXISTS user_activity_user_date_idx ON public.user_activity(user_id, created_at);'),
    ('user_athlete_links(user_id,athlete_id)', 'user_athlete_links', ['user_id, athlete_id'],
     'CREATE INDEX CONCURRENTLY IF NOT EXISTS user_athlete_links_user_athlete_idx ON public.user_athlete_links(user_id, athlete_id);'),
    ('results(athlete_id)', 'results', ['athlete_id', 'athlete_id, event_id'],
     'CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_results_athlete ON public.results(athlete_id);'),
    ('results(event_id)', 'results', ['event_id'],
     'CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_results_event ON public.results(event_id);'),
    ('events(competition_id)', 'events', ['competition_id'],
     'CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_events_competition ON public.events(competition_id);'),
    ('athletes(person_id)', 'athletes', ['person_id'],
     'CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_athletes_person ON public.athletes(person_id);'),
]


@bp.route('/health/indexes')
def health_indexes():
    """Report presence of recommended lookup indexes."""
    if not os.environ.get('DATABASE_URL'):
        return {
            'connected': False,
            'status': 'no_database_url',
            'message': 'DATABASE_URL is not set; cannot inspect PostgreSQL indexes.',
        }
    try:
        idx = ds_list_indexes()
    except Exception as e:  # pragma: no cover
        return {'connected': False, 'status': 'error', 'error': str(e)}

    def has_index(table: str, cols: str) -> bool:
        cols_norm = cols.replace(' ', '')
        for row in idx:
            if row.get('tablename') != table:
                continue
            d = (row.get('indexdef') or '').lower().replace(' ', '')
            if f'({cols_norm})' in d:
                return True
        return False

    checks = {}
    suggestions = []
    for label, table, variants, statement in _RECOMMENDED_INDEXES:
        present = any(has_index(table, cols) for cols in variants)
        checks[label] = present
        if not present:
            suggestions.append(statement)
    return {
        'connected': True,
        'status': 'ok',
        'indexes_present': checks,
        'missing': [k for k, v in checks.items() if not v],
        'suggestions': suggestions,
    }


@bp.route('/')
def index():
    return redirect(url_for('main.dashboard'))


@bp.route('/dashboard')
def dashboard():
    user_session = get_user_session()
    competitions = _cache_get_competitions(RECENT_COMPETITIONS)
    if competitions is None:
        competitions = ds_list_recent_competitions(limit=RECENT_COMPETITIONS) or []
        _cache_set_competitions(RECENT_COMPETITIONS, competitions)
    stats = {
        'total_competitions': len(competitions),
        'user_tier': user_session.get('tier') if user_session else 'not logged in',
    }
    breadcrumbs = [('Dashboard', None)]
    return render_template(
        'dashboard.html',
        title='Dashboard',
        breadcrumbs=breadcrumbs,
        competitions=competitions,
        stats=stats,
    )


@bp.route('/athletes')
def athletes():
    query = (request.args.get('q') or '').strip()
    athlete_list = ds_search_athletes(query=query or None, limit=50) or []
    breadcrumbs = [('Athletes', None)]
    return render_template(
        'athletes.html',
        title='Athletes',
        breadcrumbs=breadcrumbs,
        athletes=athlete_list,
        query=query,
    )


@bp.route('/athlete/<int:athlete_id>')
def athlete_profile(athlete_id):
    """Athlete profile gated by tier limits.

    Blocked views still render (HTTP 200) with either the limit banner or a
    login prompt; an unknown athlete is a 404.
    """
    user_session = get_user_session()
    can_view, reason = tiers.can_user_view_athlete(user_session, athlete_id)
    breadcrumbs = [('Athletes', url_for('main.athletes')), ('Athlete', None)]
    max_views = tiers.TIER_LIMITS['free']['athlete_views']

    if not can_view:
        if reason == 'not_found':
            abort(404)
        current_app.logger.info('athlete_view_blocked athlete=%s reason=%s', athlete_id, reason)
        return render_template(
            'athlete_blocked.html',
            title='Athlete',
            breadcrumbs=breadcrumbs,
            reason=reason,
            views_remaining=0,
            max_views=max_views,
            banner='exhausted' if reason == 'view_limit_exceeded' else None,
        )

    athlete = ds_get_athlete(athlete_id)
    if athlete is None:
        abort(404)

    result_limit = tiers.result_limit_for(user_session)
    results = ds_list_athlete_results(athlete_id, result_limit) or []
    total_results = ds_count_athlete_results(athlete_id)

    linked = False
    if user_session:
        tiers.track_activity(user_session, 'athlete_view', resource_id=str(athlete_id))
        linked = ds_find_user_athlete_link(user_session['user_id'], athlete_id) is not None

    remaining = tiers.views_remaining(user_session)
    banner = None
    if user_session and user_session.get('tier') == 'free' and not math.isinf(remaining):
        banner = tiers.banner_state(remaining)

    name = athlete.get('display_name') or ' '.join(
        p for p in (athlete.get('first_name'), athlete.get('last_name')) if p
    )
    breadcrumbs[-1] = (name, None)
    return render_template(
        'athlete.html',
        title=name,
        breadcrumbs=breadcrumbs,
        athlete=athlete,
        athlete_name=name,
        results=results,
        total_results=total_results,
        result_limit=result_limit,
        views_remaining=remaining,
        max_views=max_views,
        banner=banner,
        linked=linked,
        show_upgrade_note=(
            (user_session is None or user_session.get('tier') == 'free')
            and len(results) >= tiers.FREE_RESULT_ROWS
        ),
    )


@bp.route('/athlete/<int:athlete_id>/claim', methods=['POST'])
@require_user
def claim_athlete(athlete_id):
    """Link the signed-in user to an athlete profile (unverified)."""
    user_session = get_user_session()
    if ds_get_athlete(athlete_id) is None:
        abort(404)
    if ds_find_user_athlete_link(user_session['user_id'], athlete_id) is None:
        ds_insert_user_athlete_link(user_session['user_id'], athlete_id)
        current_app.logger.info('athlete_claimed user=%s athlete=%s', user_session['user_id'], athlete_id)
    return redirect(url_for('main.athlete_profile', athlete_id=athlete_id))


@bp.route('/auth/login', methods=['GET', 'POST'])
def login():
    if get_user_session():
        return redirect(url_for('main.dashboard'))
    breadcrumbs = [('Sign in', None)]
    redirect_to = safe_redirect_target(request.values.get('redirectTo'))
    if request.method == 'GET':
        return render_template('login.html', title='Sign in', breadcrumbs=breadcrumbs,
                               error=None, redirect_to=redirect_to)

    email = (request.form.get('email') or '').strip()
    password = request.form.get('password') or ''
    if not email or not password:
        return render_template('login.html', title='Sign in', breadcrumbs=breadcrumbs,
                               error='Email and password are required',
                               redirect_to=redirect_to), 400
    try:
        user = authenticate_user(email, password)
    except Exception:
        current_app.logger.exception('Login failed for %s', email)
        return render_template('login.html', title='Sign in', breadcrumbs=breadcrumbs,
                               error='Login failed', redirect_to=redirect_to), 500
    if not user:
        current_app.logger.info('login_rejected email=%s', email)
        return render_template('login.html', title='Sign in', breadcrumbs=breadcrumbs,
                               error='Invalid email or password',
                               redirect_to=redirect_to), 400
    current_app.logger.info('login_ok user=%s tier=%s', user.get('id'), user.get('tier'))
    return create_user_session(user, redirect_to)


@bp.route('/auth/register', methods=['GET', 'POST'])
def register():
    if get_user_session():
        return redirect(url_for('main.dashboard'))
    breadcrumbs = [('Sign up', None)]
    if request.method == 'GET':
        return render_template('register.html', title='Sign up', breadcrumbs=breadcrumbs,
                               error=None, form={})

    form = {
        'email': (request.form.get('email') or '').strip(),
        'first_name': (request.form.get('first_name') or '').strip(),
        'last_name': (request.form.get('last_name') or '').strip(),
    }
    password = request.form.get('password') or ''
    error = None
    if not form['email'] or not password:
        error = 'Email and password are required'
    elif '@' not in form['email']:
        error = 'Enter a valid email address'
    elif len(password) < 8:
        error = 'Password must be at least 8 characters'
    if error:
        return render_template('register.html', title='Sign up', breadcrumbs=breadcrumbs,
                               error=error, form=form), 400
    try:
        user = create_user(form['email'], password, form['first_name'], form['last_name'])
    except UserExistsError:
        return render_template('register.html', title='Sign up', breadcrumbs=breadcrumbs,
                               error='An account with that email already exists', form=form), 400
    current_app.logger.info('user_registered user=%s', user.get('id'))
    return create_user_session(user)


@bp.route('/auth/logout', methods=['GET', 'POST'])
def logout():
    return auth_logout()


@bp.route('/upgrade')
def upgrade():
    user_session = get_user_session()
    current_tier = user_session.get('tier') if user_session else None
    plans = []
    for plan in PLANS:
        entry = dict(plan)
        entry['current'] = plan['tier'] == current_tier
        if entry['current']:
            entry['cta'] = 'Current Plan'
        elif plan['tier'] == 'free':
            entry['cta'] = 'Get Started'
        else:
            entry['cta'] = f"Upgrade to {plan['name']}"
        plans.append(entry)
    breadcrumbs = [('Upgrade', None)]
    return render_template('upgrade.html', title='Upgrade', breadcrumbs=breadcrumbs, plans=plans)

import logging
import os
import secrets
from functools import wraps
from flask import Flask, request, g, jsonify, current_app
from flask_debugtoolbar import DebugToolbarExtension
from flask_httpauth import HTTPBasicAuth
from werkzeug.security import generate_password_hash, check_password_hash
from listing_calendar.booking import database, memory_store
from listing_calendar.booking import booking_utils as util
from listing_calendar.booking.calendar import CalendarEditor, load_snapshot
from listing_calendar.booking.error_utils import StoreError, ValidationError
logger = logging.getLogger(__name__)


def _default_store_factory(store_type):
    """
    Picks the period store used for each request.
    'memory' keeps one store for the life of the process so edits survive between requests.
    """
    if store_type == 'memory':
        shared_store = memory_store.InMemoryPeriodStore()
        return lambda: shared_store
    return database.DatabasePersistence


def create_app():
    app = Flask(__name__)
    app.secret_key = secrets.token_hex(32) #256 bit
    app.config['SECRET_KEY'] = app.secret_key
    if os.environ.get('FLASK_ENV') == 'production':
        app.config['CALENDAR_STORE'] = 'postgres'
    else:
        app.config['CALENDAR_STORE'] = os.environ.get('CALENDAR_STORE', 'postgres')
        app.config["DEBUG_TB_INTERCEPT_REDIRECTS"] = False  # Prevents redirect issues
    # Tests swap this out for a store of their own
    app.config['STORE_FACTORY'] = _default_store_factory(app.config['CALENDAR_STORE'])
    return app

app = create_app()
auth = HTTPBasicAuth()


# Must set this in prod
prod_hash = os.getenv('HASH_ADMIN')

if prod_hash:
    users = {
        "admin": generate_password_hash(prod_hash)
    }
else: # For dev
    users = {
        "admin": generate_password_hash('secret')
    }

@auth.verify_password
def verify_password(username, password):
    if username in users and check_password_hash(users.get(username), password):
        return username

# Use decorator to create g.db instance within request context window for functions that require it
def instantiate_database(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.db = current_app.config['STORE_FACTORY']()
        return f(*args, **kwargs)
    return decorated_function


class FormSelection:
    """
    Calendar surface for a single form submission.
    The posted dates are the selection. The refreshed snapshot is kept so the route can send it back.
    """
    def __init__(self, selected_dates):
        self.selected_dates = selected_dates
        self.config = None
        self.redrawn = False

    def set_config(self, snapshot):
        self.config = snapshot

    def clear(self):
        self.selected_dates = set()

    def redraw(self):
        self.redrawn = True


def _edit_calendar(listing_id, action):
    """Runs one bulk edit for the posted dates and returns the refreshed calendar."""
    surface = FormSelection(util.parse_selected_dates(request.form))
    editor = CalendarEditor(g.db, listing_id, surface)
    snapshot = action(editor)
    return jsonify(snapshot.to_dict()), 200


# Admin view of a listing's calendar: rates, open periods, bookings and the dates blocked around them
@app.route("/listings/<listing_id>/calendar", methods=['GET'])
@auth.login_required
@instantiate_database
def get_calendar(listing_id):
    return jsonify(load_snapshot(g.db, listing_id).to_dict())

# Per-day rate and availability, as the calendar cells show them
@app.route("/listings/<listing_id>/calendar/days", methods=['GET'])
@auth.login_required
@instantiate_database
def get_calendar_days(listing_id):
    date_range = util.parse_day_range(request.args.get('start', ''), request.args.get('end', ''))
    snapshot = load_snapshot(g.db, listing_id)
    return jsonify([view.to_dict() for view in snapshot.day_views(date_range)])

@app.route("/listings/<listing_id>/calendar/rates", methods=['POST'])
@auth.login_required
@instantiate_database
def apply_rate(listing_id):
    rate = request.form.get('rate', '')
    return _edit_calendar(listing_id, lambda editor: editor.apply_rate(rate))

@app.route("/listings/<listing_id>/calendar/rates/reset", methods=['POST'])
@auth.login_required
@instantiate_database
def reset_rate(listing_id):
    return _edit_calendar(listing_id, lambda editor: editor.reset_rate())

@app.route("/listings/<listing_id>/calendar/open", methods=['POST'])
@auth.login_required
@instantiate_database
def open_dates(listing_id):
    return _edit_calendar(listing_id, lambda editor: editor.open_dates())

@app.route("/listings/<listing_id>/calendar/close", methods=['POST'])
@auth.login_required
@instantiate_database
def close_dates(listing_id):
    return _edit_calendar(listing_id, lambda editor: editor.close_dates())

# Rejected input never reaches the store
@app.errorhandler(ValidationError)
def handle_validation_error(error):
    return jsonify({"error": error.message}), 422

# Edits already written before the failure stay in place, the admin reloads the calendar to see them
@app.errorhandler(StoreError)
def handle_store_error(error):
    logger.error(f"Period store error: {error.message}")
    return jsonify({"error": "The calendar could not be updated. Please reload and try again."}), 500

if __name__ == '__main__':
    # production
    if os.environ.get('FLASK_ENV') == 'production':
       app.run(debug=False)
    else:
       toolbar = DebugToolbarExtension(app)
       app.run(debug=True, port=5003)

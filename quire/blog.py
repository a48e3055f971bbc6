#!/usr/bin/env python3
"""
A single-file personal site: essays, notes, an about page and a shelf.
"""

import json
import os
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from urllib.parse import urlparse

import click
from flask import (
    Flask,
    abort,
    flash,
    g,
    jsonify,
    redirect,
    render_template_string,
    request,
    session,
    url_for,
)
from markupsafe import Markup
from werkzeug.middleware.proxy_fix import ProxyFix

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
DB_FILE = Path(os.environ.get("DATABASE", str(ROOT / "blog.sqlite3")))

ENV_FILE = ROOT / ".env"
SECRET_FILE = ROOT / ".secret_key"
SECRET_KEY = os.environ.get("SECRET_KEY") or (
    SECRET_FILE.read_text().strip() if SECRET_FILE.exists() else secrets.token_hex(32)
)
if not os.environ.get("SECRET_KEY"):
    SECRET_FILE.write_text(SECRET_KEY)

SITE_DEFAULT = "quire"
ADMIN_DEFAULTS = {"ADMIN_USERNAME": "admin", "ADMIN_PASSWORD": "admin"}

CONTENT_TYPES = ("post", "note")
CONTENT_STATUSES = ("published", "draft")
SHELF_TYPES = ("book", "movie", "essay")
SHELF_TEXT_FIELDS = ("title", "author", "source", "url", "cover_url", "review")
SHELF_COLUMNS = ("type", *SHELF_TEXT_FIELDS, "year")
FAVORITE = "❤"
MUST_READ = "★"
QUOTE_OPEN = '<blockquote class="quote-block">'
QUOTE_CLOSE = "</blockquote>"

try:
    __version__ = version("quire")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App + template filters
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(SECRET_KEY=SECRET_KEY, DATABASE=str(DB_FILE))
app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SECURE=os.environ.get("SESSION_COOKIE_SECURE", "0") == "1",
    PERMANENT_SESSION_LIFETIME=timedelta(hours=24),
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)


@app.template_filter("ts")
def ts_filter(iso: str | None) -> str:
    if not iso:
        return ""
    dt = parse_date(iso)
    if dt == EPOCH:
        return iso
    return dt.strftime("%b %d, %Y")


@app.template_filter("preview")
def preview_filter(text: str | None) -> str:
    return get_preview(text or "")


@app.template_filter("quotes")
def quotes_filter(text: str | None) -> Markup:
    """Expand |-quoted runs into blockquotes; the rest is emitted as stored."""
    return Markup(format_content(text or ""))


###############################################################################
# Database helpers
###############################################################################
def get_db():
    if "db" not in g:
        g.db = sqlite3.connect(app.config["DATABASE"])
        g.db.row_factory = sqlite3.Row
    return g.db


@app.teardown_appcontext
def close_db(error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    db.executescript(
        f"""
        ------------------------------------------------------------
        -- 1.  Posts + notes
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS posts (
            id       TEXT PRIMARY KEY,
            title    TEXT NOT NULL,
            content  TEXT NOT NULL,
            type     TEXT NOT NULL,                  -- post | note
            date     TEXT NOT NULL,
            status   TEXT NOT NULL DEFAULT 'published'
        );

        CREATE INDEX IF NOT EXISTS idx_posts_type ON posts(type);

        ------------------------------------------------------------
        -- 2.  Shelf (books, movies, essays)
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS shelf_items (
            id          TEXT PRIMARY KEY,
            type        TEXT NOT NULL,               -- book | movie | essay
            title       TEXT NOT NULL,
            author      TEXT,
            source      TEXT,
            url         TEXT,
            cover_url   TEXT,
            year        INTEGER,
            badge       TEXT,                        -- NULL | ❤ | ★
            review      TEXT,
            created_at  TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_shelf_type ON shelf_items(type);

        ------------------------------------------------------------
        -- 3.  Site-wide key/value settings
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS settings (
            key   TEXT PRIMARY KEY,
            value TEXT
        );
        INSERT OR IGNORE INTO settings (key, value)
            VALUES ('site_name', '{SITE_DEFAULT}'),
                   ('about', ''),
                   ('sidebar', '[]');
        """
    )
    db.commit()


# -------------------------------------------------------------------------
# Time helpers
# -------------------------------------------------------------------------
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def parse_date(value: str | None) -> datetime:
    """Parse a stored ISO-8601 stamp; anything unreadable sorts last."""
    if not value:
        return EPOCH
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return EPOCH
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _new_id(table: str, *, db) -> str:
    """Millisecond creation stamp, bumped until it is free in *table*."""
    stamp = int(utc_now().timestamp() * 1000)
    while db.execute(f"SELECT 1 FROM {table} WHERE id=?", (str(stamp),)).fetchone():
        stamp += 1
    return str(stamp)


###############################################################################
# CLI – initialise + legacy import
###############################################################################
def import_legacy(src: Path, *, db) -> dict[str, int]:
    """
    Load the old flat-file store (posts.json, about.json, sidebar.json)
    from *src* into the tables.  Rows with an existing id are replaced.
    """
    counts = {"posts": 0, "about": 0, "sidebar": 0}

    posts_file = src / "posts.json"
    if posts_file.exists():
        rows = json.loads(posts_file.read_text(encoding="utf-8"))
        for p in rows:
            kind = p.get("type") if p.get("type") in CONTENT_TYPES else "post"
            db.execute(
                """INSERT OR REPLACE INTO posts (id, title, content, type, date, status)
                          VALUES (?,?,?,?,?,?)""",
                (
                    str(p["id"]),
                    (p.get("title") or "").strip(),
                    (p.get("content") or "").strip(),
                    kind,
                    p.get("date") or utc_now().isoformat(timespec="milliseconds"),
                    p.get("status") or "published",
                ),
            )
            counts["posts"] += 1
        db.commit()

    about_file = src / "about.json"
    if about_file.exists():
        about = json.loads(about_file.read_text(encoding="utf-8"))
        set_setting("about", (about.get("content") or "").strip())
        counts["about"] = 1

    sidebar_file = src / "sidebar.json"
    if sidebar_file.exists():
        sidebar = json.loads(sidebar_file.read_text(encoding="utf-8"))
        topics = set_sidebar(sidebar.get("topics") or [])
        counts["sidebar"] = len(topics)

    return counts


@app.cli.command("init")
def cli_init():
    """Create the tables and seed the default settings."""
    init_db()  # no-op if already there
    click.secho("\n✅  Database ready.", fg="green")
    click.echo(f"\n{app.config['DATABASE']}\n")
    user, _ = admin_credentials()
    click.echo(f"Log in as '{user}' at /admin/login.")


@app.cli.command("import-json")
@click.argument(
    "src", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
def cli_import_json(src: Path):
    """Import posts.json / about.json / sidebar.json from SRC."""
    init_db()
    counts = import_legacy(src, db=get_db())
    click.secho("\n📥  Import finished.", fg="green")
    click.echo(
        f"  posts   {counts['posts']:>6}\n"
        f"  about   {counts['about']:>6}\n"
        f"  topics  {counts['sidebar']:>6}"
    )


###############################################################################
# Text helpers
###############################################################################
def get_preview(content: str) -> str:
    """First non-blank line, trimmed; "" when there is none."""
    for ln in content.split("\n"):
        if ln.strip():
            return ln.strip()
    return ""


def _is_quote(line: str) -> bool:
    return line.strip().startswith("|")


def format_content(content: str) -> str:
    """
    Turn every run of lines starting with “|” into one
    <blockquote class="quote-block"> … </blockquote>.

    Quote lines lose the bar and the whitespace around it; every other line
    is passed through verbatim.  Each input line ends with a newline.
    """
    if not content:
        return ""

    out, in_quote = [], False
    for ln in content.split("\n"):
        if _is_quote(ln):
            if not in_quote:
                out.append(QUOTE_OPEN)
                in_quote = True
            out.append(ln.strip()[1:].strip() + "\n")
            continue

        if in_quote:  # run ended
            out.append(QUOTE_CLOSE)
            in_quote = False
        out.append(ln + "\n")

    if in_quote:
        out.append(QUOTE_CLOSE)
    return "".join(out)


###############################################################################
# Content store (posts + notes)
###############################################################################
def list_content(*, db) -> list[sqlite3.Row]:
    return db.execute("SELECT * FROM posts").fetchall()


def content_by_type(
    kind: str, *, db, include_drafts: bool = False
) -> list[sqlite3.Row]:
    """Items of one type, newest first."""
    rows = db.execute("SELECT * FROM posts WHERE type=?", (kind,)).fetchall()
    if not include_drafts:
        rows = [r for r in rows if r["status"] == "published"]
    return sorted(rows, key=lambda r: parse_date(r["date"]), reverse=True)


def get_content(item_id: str, *, db) -> sqlite3.Row | None:
    return db.execute("SELECT * FROM posts WHERE id=?", (item_id,)).fetchone()


def create_content(
    title: str, content: str, kind: str, *, db, status: str = "published"
) -> sqlite3.Row:
    item_id = _new_id("posts", db=db)
    db.execute(
        """INSERT INTO posts (id, title, content, type, date, status)
                  VALUES (?,?,?,?,?,?)""",
        (
            item_id,
            (title or "").strip(),
            (content or "").strip(),
            kind if kind in CONTENT_TYPES else "post",
            utc_now().isoformat(timespec="milliseconds"),
            status if status in CONTENT_STATUSES else "published",
        ),
    )
    db.commit()
    return get_content(item_id, db=db)


def update_content(
    item_id: str, title: str, content: str, *, db, status: str | None = None
) -> bool:
    """Replace title + body (and status when given).  Type and date stay."""
    if get_content(item_id, db=db) is None:
        return False
    db.execute(
        "UPDATE posts SET title=?, content=? WHERE id=?",
        ((title or "").strip(), (content or "").strip(), item_id),
    )
    if status in CONTENT_STATUSES:
        db.execute("UPDATE posts SET status=? WHERE id=?", (status, item_id))
    db.commit()
    return True


def delete_content(item_id: str, *, db) -> None:
    db.execute("DELETE FROM posts WHERE id=?", (item_id,))
    db.commit()


###############################################################################
# Shelf store
###############################################################################
def shelf_fields(form) -> dict:
    """
    Coerce submitted shelf fields: strings are trimmed (empty → NULL),
    a malformed year becomes NULL, an unknown type falls back to “book”.
    Keys missing from *form* are left out, so partial updates stay partial.
    """
    fields = {}
    if "type" in form:
        kind = (form.get("type") or "").strip()
        fields["type"] = kind if kind in SHELF_TYPES else "book"
    for key in SHELF_TEXT_FIELDS:
        if key in form:
            fields[key] = (form.get(key) or "").strip() or None
    if "year" in form:
        raw = str(form.get("year") or "").strip()
        try:
            fields["year"] = int(raw)
        except ValueError:
            fields["year"] = None
    return fields


def list_shelf(*, db, kind: str | None = None) -> list[sqlite3.Row]:
    """Newest year first (no year last), then newest entry first."""
    if kind:
        return db.execute(
            "SELECT * FROM shelf_items WHERE type=? "
            "ORDER BY year DESC, created_at DESC",
            (kind,),
        ).fetchall()
    return db.execute(
        "SELECT * FROM shelf_items ORDER BY year DESC, created_at DESC"
    ).fetchall()


def get_shelf(item_id: str, *, db) -> sqlite3.Row | None:
    return db.execute("SELECT * FROM shelf_items WHERE id=?", (item_id,)).fetchone()


def create_shelf(fields: dict, *, db) -> sqlite3.Row:
    row = {k: fields.get(k) for k in SHELF_COLUMNS}
    row["type"] = row["type"] if row["type"] in SHELF_TYPES else "book"
    row["title"] = row["title"] or ""
    item_id = _new_id("shelf_items", db=db)
    db.execute(
        """INSERT INTO shelf_items
                  (id, type, title, author, source, url, cover_url, year,
                   review, created_at)
                  VALUES (?,?,?,?,?,?,?,?,?,?)""",
        (
            item_id,
            row["type"],
            row["title"],
            row["author"],
            row["source"],
            row["url"],
            row["cover_url"],
            row["year"],
            row["review"],
            utc_now().isoformat(timespec="milliseconds"),
        ),
    )
    db.commit()
    return get_shelf(item_id, db=db)


def update_shelf(item_id: str, fields: dict, *, db) -> bool:
    if get_shelf(item_id, db=db) is None:
        return False
    if "title" in fields:
        fields = {**fields, "title": fields["title"] or ""}  # NOT NULL
    cols = [k for k in SHELF_COLUMNS if k in fields]
    if cols:
        vals = [fields[k] for k in cols]
        db.execute(
            f"UPDATE shelf_items SET {', '.join(f'{c}=?' for c in cols)} WHERE id=?",
            (*vals, item_id),
        )
        db.commit()
    return True


def delete_shelf(item_id: str, *, db) -> None:
    db.execute("DELETE FROM shelf_items WHERE id=?", (item_id,))
    db.commit()


def _set_badge(kind: str, ids, badge: str, *, db) -> None:
    db.execute(
        "UPDATE shelf_items SET badge=NULL WHERE type=? AND badge=?", (kind, badge)
    )
    ids = [i for i in ids if i]
    if ids:
        marks = ",".join("?" * len(ids))
        db.execute(
            f"UPDATE shelf_items SET badge=? WHERE type=? AND id IN ({marks})",
            (badge, kind, *ids),
        )
    db.commit()


def set_favorites(kind: str, ids, *, db) -> None:
    _set_badge(kind, ids, FAVORITE, db=db)


def set_must_reads(kind: str, ids, *, db) -> None:
    _set_badge(kind, ids, MUST_READ, db=db)


###############################################################################
# Settings
###############################################################################
def get_setting(key, default=None):
    row = get_db().execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
    return row["value"] if row and row["value"] is not None else default


def set_setting(key, value):
    db = get_db()
    db.execute(
        "INSERT INTO settings (key,value) VALUES (?,?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
        (key, value),
    )
    db.commit()


def get_sidebar() -> list[str]:
    try:
        topics = json.loads(get_setting("sidebar", "[]"))
    except ValueError:
        return []
    return [t for t in topics if isinstance(t, str)] if isinstance(topics, list) else []


def set_sidebar(topics) -> list[str]:
    cleaned = [t.strip() for t in topics if isinstance(t, str) and t.strip()]
    set_setting("sidebar", json.dumps(cleaned, ensure_ascii=False))
    return cleaned


def _read_env_file() -> dict[str, str]:
    env = {}
    if not ENV_FILE.exists():
        return env
    for ln in ENV_FILE.read_text().splitlines():
        ln = ln.strip()
        if not ln or ln.startswith("#") or "=" not in ln:
            continue
        k, v = ln.split("=", 1)
        env[k.strip()] = v.strip()
    return env


def admin_credentials() -> tuple[str, str]:
    """The one shared login: process env first, then .env, then defaults."""
    env_file = _read_env_file()
    user, pw = (
        os.environ.get(k) or env_file.get(k) or ADMIN_DEFAULTS[k]
        for k in ("ADMIN_USERNAME", "ADMIN_PASSWORD")
    )
    return user, pw


app.jinja_env.globals.update(get_setting=get_setting, version=__version__)
app.jinja_env.globals["is_admin"] = lambda: bool(g.get("admin"))
app.jinja_env.globals["shelf_types"] = SHELF_TYPES


###############################################################################
# Authentication
###############################################################################
def check_credentials(username: str, password: str) -> bool:
    if not isinstance(username, str) or not isinstance(password, str):
        return False
    user, pw = admin_credentials()
    return secrets.compare_digest(
        username.encode(), user.encode()
    ) and secrets.compare_digest(password.encode(), pw.encode())


def login_required() -> None:
    if not g.get("admin"):
        abort(redirect(url_for("admin_login")))


@app.before_request
def load_auth_context():
    # the cookie's signature was already verified by the session interface
    g.admin = session.get("logged_in") is True


def _start_admin_session() -> None:
    session.clear()
    session.permanent = True
    session["logged_in"] = True
    g.admin = True


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


###############################################################################
# Templates + Views
###############################################################################


def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


TEMPL_PROLOG = """
<!doctype html>
<html lang="en">
<title>{{ title or 'quire' }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1, shrink-to-fit=no">
<meta charset="utf-8">
<style>
html{font-size:62.5%;font-family:Georgia,"Times New Roman",serif}body{font-size:1.8rem;line-height:1.618;max-width:38em;margin:auto;color:#222;background:#fbfaf7;padding:13px}
h1,h2,h3{line-height:1.15;margin-top:2.5rem;margin-bottom:1.2rem}p{margin-top:0;margin-bottom:2rem}
a{color:#222;text-decoration-thickness:1px;text-underline-offset:.18em}a:hover{color:#666}
.quote-block{margin:0 0 1.5rem 0;padding:.6em 1em;border-left:3px solid #999;background:#f0eee8;white-space:pre-wrap;font-style:italic}
.e-content{white-space:pre-wrap}
.preview{color:#666;margin:.1rem 0 1.4rem}
.meta{color:#888;font-size:.8em}
.badge{margin-left:.35em}
.shelf-item{display:flex;gap:1rem;margin-bottom:1.5rem}.shelf-item img{width:6rem;height:auto}
textarea,input,select{font:inherit;font-size:.9em;padding:4px 8px;margin-bottom:8px;box-sizing:border-box}textarea{width:100%}
nav{display:flex;flex-wrap:wrap;gap:1.1rem;font-size:.9em;margin-bottom:1rem}
nav a[aria-current=page]{text-decoration-thickness:2px}
aside{font-size:.85em;color:#555;border-top:1px solid #ddd;margin-top:2rem}
</style>
<body>
<div class="container">
    <h1 style="margin-top:1rem"><a href="{{ url_for('index') }}" style="text-decoration:none">{{ title or 'quire' }}</a></h1>
    <nav aria-label="Primary">
        {% for ep, label in [('writing','Writing'),('misc','Misc'),('shelf','Shelf'),('archive','Archive'),('about','About')] %}
        <a href="{{ url_for(ep) }}" {% if request.endpoint==ep %}aria-current="page"{% endif %}>{{ label }}</a>
        {% endfor %}
        {% if is_admin() %}
        <a href="{{ url_for('admin') }}" {% if request.endpoint=='admin' %}aria-current="page"{% endif %}>Admin</a>
        <a href="{{ url_for('admin_logout') }}">Logout</a>
        {% endif %}
    </nav>
    {% with msgs = get_flashed_messages() %}
    {% if msgs %}
    <div role="status" style="background:#eee;padding:.5rem 1rem;font-size:.85em;">{{ msgs|join('<br>')|safe }}</div>
    {% endif %}
    {% endwith %}
    <main id="main-content" role="main">
"""

TEMPL_EPILOG = """
    </main>
    <footer style="margin-top:2em;padding-top:1em;font-size:.75em;color:#888;border-top:1px solid #ddd;">
        quire v{{ version }}
        {% if not is_admin() %}&nbsp;·&nbsp;<a href="{{ url_for('admin_login') }}">Login</a>{% endif %}
    </footer>
</div>
</body>
</html>
"""


###############################################################################
# Public pages
###############################################################################
@app.route("/")
def index():
    db = get_db()
    return render_template_string(
        TEMPL_INDEX,
        posts=content_by_type("post", db=db),
        topics=get_sidebar(),
        title=get_setting("site_name", SITE_DEFAULT),
    )


TEMPL_INDEX = wrap("""
{% block body %}
    {% for p in posts %}
    <article>
        <h2 style="margin-bottom:.2rem"><a href="{{ url_for('essay', item_id=p['id']) }}">{{ p['title'] }}</a></h2>
        <div class="meta">{{ p['date']|ts }}</div>
        <p class="preview">{{ p['content']|preview }}</p>
    </article>
    {% else %}
    <p>Nothing here yet.</p>
    {% endfor %}
    {% if topics %}
    <aside>
        <h3>Topics</h3>
        <ul>{% for t in topics %}<li>{{ t }}</li>{% endfor %}</ul>
    </aside>
    {% endif %}
{% endblock %}
""")


TEMPL_LISTING = wrap("""
{% block body %}
    <h2>{{ heading }}</h2>
    {% for p in items %}
    <article>
        <h3 style="margin-bottom:.2rem"><a href="{{ url_for(detail, item_id=p['id']) }}">{{ p['title'] or (p['content']|preview) }}</a></h3>
        <div class="meta">{{ p['date']|ts }}</div>
        {% if p['title'] %}<p class="preview">{{ p['content']|preview }}</p>{% endif %}
    </article>
    {% else %}
    <p>Nothing here yet.</p>
    {% endfor %}
{% endblock %}
""")


@app.route("/writing")
def writing():
    return render_template_string(
        TEMPL_LISTING,
        heading="Writing",
        items=content_by_type("post", db=get_db()),
        detail="essay",
        title=get_setting("site_name", SITE_DEFAULT),
    )


@app.route("/misc")
def misc():
    return render_template_string(
        TEMPL_LISTING,
        heading="Misc",
        items=content_by_type("note", db=get_db()),
        detail="note",
        title=get_setting("site_name", SITE_DEFAULT),
    )


@app.route("/ss")
def ss():
    return redirect(url_for("misc"), code=301)


@app.route("/archive")
def archive():
    return render_template_string(
        TEMPL_ARCHIVE,
        posts=content_by_type("post", db=get_db()),
        title=get_setting("site_name", SITE_DEFAULT),
    )


TEMPL_ARCHIVE = wrap("""
{% block body %}
    <h2>Archive</h2>
    <ul style="list-style:none;padding-left:0">
    {% for p in posts %}
        <li><span class="meta" style="display:inline-block;min-width:8em">{{ p['date']|ts }}</span>
            <a href="{{ url_for('essay', item_id=p['id']) }}">{{ p['title'] }}</a></li>
    {% endfor %}
    </ul>
{% endblock %}
""")


def _visible(row) -> bool:
    return row is not None and (row["status"] == "published" or g.get("admin"))


@app.route("/essay/<item_id>")
def essay(item_id):
    row = get_content(item_id, db=get_db())
    if not _visible(row):
        return redirect(url_for("index"))
    return render_template_string(
        TEMPL_SINGLE, post=row, title=get_setting("site_name", SITE_DEFAULT)
    )


@app.route("/note/<item_id>")
def note(item_id):
    row = get_content(item_id, db=get_db())
    if not _visible(row):
        return redirect(url_for("misc"))
    return render_template_string(
        TEMPL_SINGLE, post=row, title=get_setting("site_name", SITE_DEFAULT)
    )


TEMPL_SINGLE = wrap("""
{% block body %}
    <article>
        {% if post['title'] %}<h2 style="margin-bottom:.2rem">{{ post['title'] }}</h2>{% endif %}
        <div class="meta">{{ post['date']|ts }}{% if post['status'] == 'draft' %} · draft{% endif %}</div>
        <div class="e-content" style="margin-top:1.5em;">{{ post['content']|quotes }}</div>
    </article>
    {% if is_admin() %}
    <details style="margin-top:2rem">
        <summary>Edit</summary>
        <form method="post" action="{{ url_for('admin_update', item_id=post['id']) }}">
            <input name="title" value="{{ post['title'] }}" style="width:100%">
            <textarea name="content" rows="12">{{ post['content'] }}</textarea>
            <button>Save</button>
        </form>
    </details>
    {% endif %}
{% endblock %}
""")


@app.route("/about")
def about():
    return render_template_string(
        TEMPL_ABOUT,
        content=get_setting("about", ""),
        title=get_setting("site_name", SITE_DEFAULT),
    )


TEMPL_ABOUT = wrap("""
{% block body %}
    <h2>About</h2>
    <div class="e-content">{{ content|quotes }}</div>
    {% if is_admin() %}
    <details style="margin-top:2rem">
        <summary>Edit</summary>
        <form method="post" action="{{ url_for('admin_about') }}">
            <textarea name="content" rows="12">{{ content }}</textarea>
            <button>Save</button>
        </form>
    </details>
    {% endif %}
{% endblock %}
""")


@app.route("/shelf")
def shelf():
    db = get_db()
    return render_template_string(
        TEMPL_SHELF,
        groups=[(kind, list_shelf(db=db, kind=kind)) for kind in SHELF_TYPES],
        about_text=get_setting("about", ""),
        favorite=FAVORITE,
        must_read=MUST_READ,
        title=get_setting("site_name", SITE_DEFAULT),
    )


TEMPL_SHELF = wrap("""
{% macro shelf_form(action, it=None) -%}
<form method="post" action="{{ action }}">
    <select name="type">
        {% for t in shelf_types %}
        <option value="{{ t }}" {% if it and it['type']==t %}selected{% endif %}>{{ t }}</option>
        {% endfor %}
    </select>
    <input name="title" placeholder="title" value="{{ it['title'] if it else '' }}">
    <input name="author" placeholder="author" value="{{ (it['author'] or '') if it else '' }}">
    <input name="source" placeholder="source" value="{{ (it['source'] or '') if it else '' }}">
    <input name="url" placeholder="url" value="{{ (it['url'] or '') if it else '' }}">
    <input name="cover_url" placeholder="cover url" value="{{ (it['cover_url'] or '') if it else '' }}">
    <input name="year" placeholder="year" value="{{ (it['year'] or '') if it else '' }}">
    <textarea name="review" rows="3" placeholder="review">{{ (it['review'] or '') if it else '' }}</textarea>
    <button>Save</button>
</form>
{%- endmacro %}
{% block body %}
    <h2>Shelf</h2>
    {% for kind, items in groups %}
    <section>
        <h3>{{ kind|capitalize }}s</h3>
        {% for it in items %}
        <div class="shelf-item">
            {% if it['cover_url'] %}<img src="{{ it['cover_url'] }}" alt="{{ it['title'] }}" loading="lazy">{% endif %}
            <div>
                {% if it['url'] %}<a href="{{ it['url'] }}" target="_blank" rel="noopener">{{ it['title'] }}</a>{% else %}{{ it['title'] }}{% endif %}
                {% if it['badge'] %}<span class="badge">{{ it['badge'] }}</span>{% endif %}
                <div class="meta">
                    {{ it['author'] or '' }}{% if it['source'] %} · {{ it['source'] }}{% endif %}{% if it['year'] %} · {{ it['year'] }}{% endif %}
                </div>
                {% if it['review'] %}<div class="e-content">{{ it['review'] }}</div>{% endif %}
                {% if is_admin() %}
                <details>
                    <summary class="meta">Edit</summary>
                    {{ shelf_form(url_for('shelf_update', item_id=it['id']), it) }}
                    <form method="post" action="{{ url_for('shelf_delete', item_id=it['id']) }}">
                        <button style="color:#c00">Delete</button>
                    </form>
                </details>
                {% endif %}
            </div>
        </div>
        {% else %}
        <p class="meta">Nothing here yet.</p>
        {% endfor %}
        {% if is_admin() and items %}
        {% for ep, mark in [('shelf_favorites', favorite), ('shelf_must_reads', must_read)] %}
        <details>
            <summary class="meta">Pick {{ mark }}</summary>
            <form method="post" action="{{ url_for(ep) }}">
                <input type="hidden" name="type" value="{{ kind }}">
                {% for it in items %}
                <label style="font-weight:normal"><input type="checkbox" name="ids" value="{{ it['id'] }}" {% if it['badge']==mark %}checked{% endif %}> {{ it['title'] }}</label>
                {% endfor %}
                <button>Save</button>
            </form>
        </details>
        {% endfor %}
        {% endif %}
    </section>
    {% endfor %}
    {% if is_admin() %}
    <hr>
    <h3>Add to shelf</h3>
    {{ shelf_form(url_for('shelf_add')) }}
    <details>
        <summary class="meta">Edit about text</summary>
        <form method="post" action="{{ url_for('admin_about') }}">
            <textarea name="content" rows="8">{{ about_text }}</textarea>
            <button>Save</button>
        </form>
    </details>
    {% endif %}
{% endblock %}
""")


###############################################################################
# Login / logout
###############################################################################
@app.route("/admin/login", methods=["GET", "POST"])
def admin_login():
    if request.method == "GET" and g.admin:
        return redirect(url_for("admin"))

    error = None
    if request.method == "POST":
        username = request.form.get("username", "")
        if check_credentials(username, request.form.get("password", "")):
            _start_admin_session()
            app.logger.info("admin login from %s", request.remote_addr)
            return redirect(url_for("admin"))
        app.logger.warning("failed login for %r from %s", username, request.remote_addr)
        error = "Invalid credentials"

    return render_template_string(
        TEMPL_LOGIN, error=error, title=get_setting("site_name", SITE_DEFAULT)
    )


TEMPL_LOGIN = wrap("""
{% block body %}
<hr>
<form method="post">
    {% if error %}<p style="color:#c00">{{ error }}</p>{% endif %}
    <input name="username" autocomplete="username" placeholder="username" style="width:100%">
    <input name="password" type="password" autocomplete="current-password" placeholder="password" style="width:100%">
    <button type="submit">Sign&nbsp;in</button>
</form>
{% endblock %}
""")


@app.route("/api/login", methods=["POST"])
def api_login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form
    username = data.get("username", "")
    if check_credentials(username, data.get("password", "")):
        _start_admin_session()
        app.logger.info("admin login (api) from %s", request.remote_addr)
        return jsonify(success=True)
    app.logger.warning("failed api login for %r from %s", username, request.remote_addr)
    return jsonify(success=False, error="Invalid credentials"), 401


@app.route("/admin/logout")
def admin_logout():
    session.clear()
    app.logger.info("admin logout from %s", request.remote_addr)
    return redirect(url_for("index"))


###############################################################################
# Admin – posts, notes, settings
###############################################################################
@app.route("/admin")
def admin():
    login_required()
    rows = sorted(
        list_content(db=get_db()), key=lambda r: parse_date(r["date"]), reverse=True
    )
    return render_template_string(
        TEMPL_ADMIN,
        posts=rows,
        about_text=get_setting("about", ""),
        topics="\n".join(get_sidebar()),
        title=get_setting("site_name", SITE_DEFAULT),
    )


TEMPL_ADMIN = wrap("""
{% block body %}
    <h2>New</h2>
    <form method="post" action="{{ url_for('admin_post') }}">
        <input name="title" placeholder="title" style="width:100%">
        <textarea name="content" rows="10" placeholder="Lines starting with | become quotes"></textarea>
        <select name="type"><option value="post">essay</option><option value="note">note</option></select>
        <select name="status"><option value="published">published</option><option value="draft">draft</option></select>
        <button>Publish</button>
    </form>

    <h2>Everything</h2>
    <ul style="list-style:none;padding-left:0">
    {% for p in posts %}
        <li style="margin-bottom:1rem">
            <a href="{{ url_for('essay' if p['type']=='post' else 'note', item_id=p['id']) }}">{{ p['title'] or (p['content']|preview) }}</a>
            <span class="meta">{{ p['type'] }} · {{ p['date']|ts }}{% if p['status']=='draft' %} · draft{% endif %}</span>
            <details>
                <summary class="meta">Edit</summary>
                <form method="post" action="{{ url_for('admin_update', item_id=p['id']) }}">
                    <input name="title" value="{{ p['title'] }}" style="width:100%">
                    <textarea name="content" rows="8">{{ p['content'] }}</textarea>
                    <select name="status">
                        {% for s in ['published', 'draft'] %}
                        <option value="{{ s }}" {% if p['status']==s %}selected{% endif %}>{{ s }}</option>
                        {% endfor %}
                    </select>
                    <button>Save</button>
                </form>
                <form method="post" action="{{ url_for('admin_delete', item_id=p['id']) }}">
                    <button style="color:#c00">Delete</button>
                </form>
            </details>
        </li>
    {% endfor %}
    </ul>

    <h2>About</h2>
    <form method="post" action="{{ url_for('admin_about') }}">
        <textarea name="content" rows="8">{{ about_text }}</textarea>
        <button>Save</button>
    </form>

    <h2>Sidebar topics</h2>
    <form method="post" action="{{ url_for('admin_sidebar') }}">
        <textarea name="topics" rows="6" placeholder="one per line">{{ topics }}</textarea>
        <button>Save</button>
    </form>
{% endblock %}
""")


@app.route("/admin/post", methods=["POST"])
def admin_post():
    login_required()
    row = create_content(
        request.form.get("title", ""),
        request.form.get("content", ""),
        request.form.get("type", "post"),
        status=request.form.get("status", "published"),
        db=get_db(),
    )
    app.logger.info("created %s %s", row["type"], row["id"])
    flash("Saved.")
    return redirect(url_for("admin"))


@app.route("/admin/update/<item_id>", methods=["POST"])
def admin_update(item_id):
    login_required()
    found = update_content(
        item_id,
        request.form.get("title", ""),
        request.form.get("content", ""),
        status=request.form.get("status"),
        db=get_db(),
    )
    if found:
        app.logger.info("updated %s", item_id)
        flash("Updated.")
    return redirect(url_for("admin"))


@app.route("/admin/delete/<item_id>", methods=["POST"])
def admin_delete(item_id):
    login_required()
    delete_content(item_id, db=get_db())
    app.logger.info("deleted %s", item_id)
    return redirect(url_for("admin"))


@app.route("/admin/edit/<item_id>")
def admin_edit(item_id):
    login_required()
    row = get_content(item_id, db=get_db())
    if row is None:
        return redirect(url_for("admin"))
    return jsonify(dict(row))


@app.route("/admin/about-content")
def admin_about_content():
    login_required()
    return jsonify(content=get_setting("about", ""))


@app.route("/admin/about", methods=["POST"])
def admin_about():
    login_required()
    set_setting("about", request.form.get("content", "").strip())
    app.logger.info("about text saved")
    came_from = urlparse(request.referrer or "").path.rstrip("/")
    return redirect(url_for("shelf") if came_from == "/shelf" else url_for("about"))


@app.route("/admin/sidebar-content")
def admin_sidebar_content():
    login_required()
    return jsonify(topics=get_sidebar())


@app.route("/admin/sidebar", methods=["POST"])
def admin_sidebar():
    login_required()
    topics = set_sidebar(request.form.get("topics", "").split("\n"))
    app.logger.info("sidebar saved (%d topics)", len(topics))
    return redirect(url_for("admin"))


###############################################################################
# Admin – shelf
###############################################################################
@app.route("/admin/shelf/add", methods=["POST"])
def shelf_add():
    login_required()
    row = create_shelf(shelf_fields(request.form), db=get_db())
    app.logger.info("shelf: added %s %s", row["type"], row["id"])
    return redirect(url_for("shelf"))


@app.route("/admin/shelf/update/<item_id>", methods=["POST"])
def shelf_update(item_id):
    login_required()
    if update_shelf(item_id, shelf_fields(request.form), db=get_db()):
        app.logger.info("shelf: updated %s", item_id)
    return redirect(url_for("shelf"))


@app.route("/admin/shelf/delete/<item_id>", methods=["POST"])
def shelf_delete(item_id):
    login_required()
    delete_shelf(item_id, db=get_db())
    app.logger.info("shelf: deleted %s", item_id)
    return redirect(url_for("shelf"))


@app.route("/admin/shelf/favorites", methods=["POST"])
def shelf_favorites():
    login_required()
    kind = request.form.get("type", "")
    if kind in SHELF_TYPES:
        set_favorites(kind, request.form.getlist("ids"), db=get_db())
    return redirect(url_for("shelf"))


@app.route("/admin/shelf/must-reads", methods=["POST"])
def shelf_must_reads():
    login_required()
    kind = request.form.get("type", "")
    if kind in SHELF_TYPES:
        set_must_reads(kind, request.form.getlist("ids"), db=get_db())
    return redirect(url_for("shelf"))


###############################################################################
# Error pages
###############################################################################
@app.errorhandler(404)
def not_found(exc):
    """Site-wide “Not Found” page."""
    return render_template_string(TEMPL_404, title=SITE_DEFAULT), 404


@app.errorhandler(sqlite3.Error)
def storage_error(exc):
    app.logger.exception("storage failure on %s", request.path)
    return render_template_string(TEMPL_500, title=SITE_DEFAULT, detail=str(exc)), 500


@app.errorhandler(500)
def internal_error(exc):
    """
    Generic 500 page for production.  In debug mode Flask bypasses this
    handler and shows the interactive traceback instead.
    """
    return render_template_string(TEMPL_500, title=SITE_DEFAULT, detail=None), 500


TEMPL_404 = wrap("""
{% block body %}
  <hr>
  <h2 style="margin-top:0">Page not found</h2>
  <p>The URL you asked for doesn’t exist.
     <a href="{{ url_for('index') }}">Back to the front page</a>.</p>
{% endblock %}
""")

TEMPL_500 = wrap("""
{% block body %}
  <hr>
  <h2 style="margin-top:0">Internal Server Error</h2>
  {% if detail %}<pre style="white-space:pre-wrap">{{ detail }}</pre>{% endif %}
  <p>Please try again in a minute.</p>
{% endblock %}
""")


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    with app.app_context():
        init_db()
    app.run(debug=True)

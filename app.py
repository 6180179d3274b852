"""
AdFetch — Facebook Ad Library search & downloader
Search the Ad Library API, pick ads, download their images/videos locally.
Run: python app.py  →  open http://localhost:3001
"""

import logging
import threading
import webbrowser

from flask import Blueprint, Flask, current_app, jsonify, render_template_string, request

from adfetch import AdFetchError, AppContext, ValidationError
from adfetch.downloader import download_batch

logger = logging.getLogger('adfetch.app')

bp = Blueprint('adfetch', __name__)

# ─────────────────────────────────────────────
# HTML TEMPLATES
# ─────────────────────────────────────────────
STYLE = r"""
:root {
  --bg: #0a0b0d;
  --surface: #111318;
  --card: #161b22;
  --border: #21262d;
  --accent: #f0a500;
  --accent2: #e05c2a;
  --text: #e6edf3;
  --muted: #7d8590;
  --green: #3fb950;
  --red: #f85149;
  --radius: 10px;
}
*, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }
body { font-family: 'Syne', sans-serif; background: var(--bg); color: var(--text); min-height: 100vh; }
.wrap { max-width: 1080px; margin: 0 auto; padding: 0 24px 80px; }

header {
  padding: 44px 0 28px; margin-bottom: 32px;
  display: flex; justify-content: space-between; align-items: flex-end;
  border-bottom: 1px solid var(--border);
}
.logo-text {
  font-size: 1.5rem; font-weight: 800; letter-spacing: -0.5px;
  background: linear-gradient(90deg, var(--accent), var(--accent2));
  -webkit-background-clip: text; -webkit-text-fill-color: transparent;
}
header p, .mono { font-family: 'DM Mono', monospace; font-size: 0.78rem; color: var(--muted); }
header a { color: var(--accent); font-family: 'DM Mono', monospace; font-size: 0.78rem; }

.label {
  font-size: 0.68rem; font-weight: 700; letter-spacing: 1.5px;
  text-transform: uppercase; color: var(--muted); margin-bottom: 6px; display: block;
}
.form-grid { display: grid; grid-template-columns: 2fr 1fr 1fr 1fr 1fr 1fr; gap: 10px; margin-bottom: 14px; }
@media (max-width: 760px) { .form-grid { grid-template-columns: 1fr 1fr; } }
input, select {
  width: 100%; background: var(--card); border: 1px solid var(--border);
  border-radius: var(--radius); padding: 11px 12px; color: var(--text);
  font-family: 'DM Mono', monospace; font-size: 0.8rem; outline: none;
}
input:focus, select:focus { border-color: var(--accent); box-shadow: 0 0 0 3px rgba(240,165,0,0.12); }

.btn {
  background: linear-gradient(135deg, var(--accent), var(--accent2)); color: #000;
  font-family: 'Syne', sans-serif; font-weight: 700; font-size: 0.85rem;
  padding: 11px 20px; border: none; border-radius: var(--radius); cursor: pointer;
}
.btn:disabled { opacity: 0.5; cursor: not-allowed; }
.btn.ghost { background: var(--border); color: var(--text); }

.panel { background: var(--card); border: 1px solid var(--border); border-radius: var(--radius); padding: 18px; margin-bottom: 20px; }
.toolbar { display: flex; gap: 10px; align-items: center; margin-bottom: 14px; flex-wrap: wrap; }
.toolbar select { width: auto; }

table { width: 100%; border-collapse: collapse; font-size: 0.82rem; }
th { text-align: left; color: var(--muted); font-size: 0.68rem; letter-spacing: 1.5px; text-transform: uppercase; padding: 8px; border-bottom: 1px solid var(--border); }
td { padding: 10px 8px; border-bottom: 1px solid var(--border); vertical-align: top; }
td .body { color: var(--muted); font-family: 'DM Mono', monospace; font-size: 0.74rem; max-height: 60px; overflow: hidden; }
td a { color: var(--accent); }

#status { font-family: 'DM Mono', monospace; font-size: 0.78rem; margin-bottom: 14px; min-height: 1em; }
#status.ok { color: var(--green); }
#status.err { color: var(--red); }

.log-line { display: flex; gap: 8px; font-family: 'DM Mono', monospace; font-size: 0.74rem; color: var(--muted); }
.log-line .ts { color: var(--accent); opacity: 0.6; flex-shrink: 0; }
.log-line.error .msg { color: var(--red); }
.log-line.warning .msg { color: var(--accent); }
#logPanel { max-height: 180px; overflow-y: auto; display: flex; flex-direction: column; gap: 3px; }

#tokenDialog { display: none; }
"""

HTML = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<title>AdFetch — Facebook Ad Library</title>
<link href="https://fonts.googleapis.com/css2?family=Syne:wght@400;600;700;800&family=DM+Mono:wght@300;400;500&display=swap" rel="stylesheet">
<style>{{ style|safe }}</style>
</head>
<body>
<div class="wrap">

  <header>
    <div>
      <div class="logo-text">AdFetch</div>
      <p>Facebook Ad Library search · downloads saved to {{ download_dir }}</p>
    </div>
    <div><a href="#" onclick="showTokenDialog(); return false;">Configure token</a> · <a href="/logs">Logs</a></div>
  </header>

  <div class="panel" id="tokenDialog">
    <span class="label">Facebook access token</span>
    <div class="toolbar">
      <input id="tokenInput" type="password" placeholder="Paste a Graph API access token">
      <button class="btn" onclick="saveToken()">Save token</button>
    </div>
    <div class="mono" id="tokenMsg"></div>
  </div>

  <div class="form-grid">
    <div><span class="label">Search</span><input id="query" placeholder="Keywords" onkeydown="if(event.key==='Enter')search()"></div>
    <div><span class="label">Search type</span>
      <select id="searchType">
        <option value="keyword">Keyword</option>
        <option value="exact">Exact phrase</option>
        <option value="advertiser">Advertiser name</option>
      </select></div>
    <div><span class="label">Country</span><input id="country" value="{{ default_country }}" maxlength="2"></div>
    <div><span class="label">Status</span>
      <select id="adActiveStatus">
        <option value="ALL">All</option>
        <option value="ACTIVE">Active</option>
        <option value="INACTIVE">Inactive</option>
      </select></div>
    <div><span class="label">Ad type</span>
      <select id="adType">
        <option value="ALL">All</option>
        <option value="POLITICAL_AND_ISSUE_ADS">Political &amp; issue</option>
        <option value="HOUSING_ADS">Housing</option>
        <option value="EMPLOYMENT_ADS">Employment</option>
        <option value="CREDIT_ADS">Credit</option>
      </select></div>
    <div><span class="label">Limit</span><input id="limit" type="number" min="1" value="25"></div>
  </div>
  <div class="toolbar"><button class="btn" id="searchBtn" onclick="search()">Search</button></div>

  <div id="status"></div>

  <div class="panel" id="resultsPanel" style="display:none">
    <div class="toolbar">
      <label class="mono"><input type="checkbox" id="selectAll" style="width:auto" onchange="toggleAll(this.checked)"> Select all</label>
      <select id="downloadType">
        <option value="all">Everything (images, videos, text)</option>
        <option value="images">Images only</option>
        <option value="videos">Videos only</option>
        <option value="text">Text and links only</option>
      </select>
      <button class="btn" id="downloadBtn" onclick="downloadSelected()">Download selected</button>
      <span class="mono" id="resultCount"></span>
    </div>
    <table>
      <thead><tr><th></th><th>Page</th><th>Ad copy</th><th>Running</th><th>Media</th><th>Snapshot</th></tr></thead>
      <tbody id="results"></tbody>
    </table>
  </div>

  <div class="panel">
    <span class="label">Server log</span>
    <div id="logPanel"></div>
  </div>

</div>

<script>
let currentAds = [];

function escHtml(s) {
  return String(s == null ? '' : s).replace(/&/g,'&amp;').replace(/</g,'&lt;').replace(/>/g,'&gt;').replace(/"/g,'&quot;').replace(/'/g,'&#39;');
}

function setStatus(msg, type) {
  const el = document.getElementById('status');
  el.textContent = msg;
  el.className = type || '';
}

function showTokenDialog(msg) {
  document.getElementById('tokenDialog').style.display = 'block';
  if (msg) document.getElementById('tokenMsg').textContent = msg;
}

async function saveToken() {
  const token = document.getElementById('tokenInput').value.trim();
  const resp = await fetch('/api/set-token', {
    method: 'POST', headers: {'Content-Type':'application/json'},
    body: JSON.stringify({token})
  });
  const data = await resp.json();
  document.getElementById('tokenMsg').textContent = data.message;
  if (data.success) document.getElementById('tokenDialog').style.display = 'none';
}

async function search() {
  const query = document.getElementById('query').value.trim();
  if (!query) { setStatus('Enter a search term', 'err'); return; }
  const params = new URLSearchParams({query});
  ['searchType','country','adActiveStatus','adType','limit'].forEach(id => {
    const v = document.getElementById(id).value.trim();
    if (v) params.set(id, v);
  });
  document.getElementById('searchBtn').disabled = true;
  setStatus('Searching...');
  try {
    const resp = await fetch('/api/search?' + params.toString());
    const data = await resp.json();
    if (data.needToken) { showTokenDialog(data.message); setStatus(data.error, 'err'); return; }
    if (data.error) { setStatus(data.error + (data.details ? ': ' + JSON.stringify(data.details) : ''), 'err'); return; }
    currentAds = data.data || [];
    renderResults();
    setStatus(currentAds.length ? '' : 'No ads found for this search.');
  } catch(e) {
    setStatus('Failed to reach local server: ' + e.message, 'err');
  } finally {
    document.getElementById('searchBtn').disabled = false;
    loadLogs();
  }
}

function renderResults() {
  document.getElementById('resultsPanel').style.display = currentAds.length ? 'block' : 'none';
  document.getElementById('resultCount').textContent = currentAds.length + ' ad(s)';
  document.getElementById('results').innerHTML = currentAds.map((ad, i) => {
    const body = (ad.ad_creative_bodies || [])[0] || (ad.ad_creative_link_titles || [])[0] || '';
    const images = (ad.ad_creative_images || []).length, videos = (ad.ad_creative_videos || []).length;
    const running = (ad.ad_delivery_start_time || '—') + (ad.ad_delivery_stop_time ? ' → ' + ad.ad_delivery_stop_time : '');
    return `<tr>
      <td><input type="checkbox" class="pick" data-i="${i}" style="width:auto"></td>
      <td>${escHtml(ad.page_name)}<div class="mono">${escHtml(ad.id)}</div></td>
      <td><div class="body">${escHtml(body)}</div></td>
      <td class="mono">${escHtml(running)}</td>
      <td class="mono">${images} img · ${videos} vid</td>
      <td>${ad.ad_snapshot_url ? `<a href="${escHtml(ad.ad_snapshot_url)}" target="_blank">open</a>` : ''}</td>
    </tr>`;
  }).join('');
}

function toggleAll(on) {
  document.querySelectorAll('.pick').forEach(cb => cb.checked = on);
}

async function downloadSelected() {
  const ads = Array.from(document.querySelectorAll('.pick:checked')).map(cb => currentAds[+cb.dataset.i]);
  if (!ads.length) { setStatus('Select at least one ad', 'err'); return; }
  document.getElementById('downloadBtn').disabled = true;
  setStatus('Downloading ' + ads.length + ' ad(s)...');
  try {
    const resp = await fetch('/api/download', {
      method: 'POST', headers: {'Content-Type':'application/json'},
      body: JSON.stringify({ads, downloadType: document.getElementById('downloadType').value})
    });
    const data = await resp.json();
    if (data.success) setStatus(data.message + ' → ' + data.batchDir, 'ok');
    else setStatus(data.error + (data.details ? ': ' + data.details : ''), 'err');
  } catch(e) {
    setStatus('Download failed: ' + e.message, 'err');
  } finally {
    document.getElementById('downloadBtn').disabled = false;
    loadLogs();
  }
}

async function loadLogs() {
  try {
    const resp = await fetch('/api/logs');
    const logs = await resp.json();
    const panel = document.getElementById('logPanel');
    panel.innerHTML = logs.slice(-100).map(l =>
      `<div class="log-line ${l.type}"><span class="ts">${new Date(l.timestamp).toLocaleTimeString()}</span><span class="msg">${escHtml(l.message)}</span></div>`
    ).join('');
    panel.scrollTop = panel.scrollHeight;
  } catch(e) { console.error(e); }
}

loadLogs();
</script>
</body>
</html>"""

LOGS_HTML = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>AdFetch — Logs</title>
<style>{{ style|safe }} #logPanel { max-height: none; }</style>
</head>
<body>
<div class="wrap">
  <header><div><div class="logo-text">Server logs</div><p>Refreshes every 2s</p></div><div><a href="/">Back to search</a></div></header>
  <div class="panel"><div id="logPanel"></div></div>
</div>
<script>
function escHtml(s) {
  return String(s).replace(/&/g,'&amp;').replace(/</g,'&lt;').replace(/>/g,'&gt;').replace(/"/g,'&quot;').replace(/'/g,'&#39;');
}
async function refresh() {
  try {
    const logs = await (await fetch('/api/logs')).json();
    document.getElementById('logPanel').innerHTML = logs.map(l =>
      `<div class="log-line ${l.type}"><span class="ts">${l.timestamp}</span><span class="msg">${escHtml(l.message)}</span></div>`
    ).join('');
  } catch(e) { console.error(e); }
}
refresh();
setInterval(refresh, 2000);
</script>
</body>
</html>"""


def _ctx() -> AppContext:
    return current_app.extensions['adfetch']


# ─────────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────────

@bp.route('/')
def index():
    config = _ctx().config
    return render_template_string(
        HTML,
        style=STYLE,
        download_dir=str(config.download_dir.resolve()),
        default_country=config.default_country,
    )


@bp.route('/logs')
def logs_page():
    return render_template_string(LOGS_HTML, style=STYLE)


@bp.route('/api/logs')
def logs():
    return jsonify(_ctx().logs())


@bp.route('/api/set-token', methods=['POST'])
def set_token():
    data = request.get_json(silent=True)
    token = data.get('token') if isinstance(data, dict) else None
    if not isinstance(token, str) or not token.strip():
        return jsonify({'success': False, 'message': 'Token not provided'}), 400
    token = token.strip()
    if _ctx().set_user_token(token):
        return jsonify({'success': True, 'message': 'Token is valid and was saved'})
    return jsonify({'success': False, 'message': 'Token is invalid or expired'}), 400


@bp.route('/api/search')
def search():
    ctx = _ctx()
    args = request.args
    logger.info('Search request received: query=%r searchType=%r', args.get('query'), args.get('searchType'))
    data = ctx.graph.search_ads(
        ctx.active_token(),
        args.get('query', ''),
        search_type=args.get('searchType'),
        country=args.get('country'),
        limit=args.get('limit'),
        ad_active_status=args.get('adActiveStatus'),
        ad_type=args.get('adType'),
    )
    return jsonify(data)


@bp.route('/api/download', methods=['POST'])
def download():
    config = _ctx().config
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    result = download_batch(
        data.get('ads'),
        data.get('downloadType') or 'all',
        root=config.download_dir,
        max_workers=config.max_concurrent_downloads,
        timeout=config.download_timeout,
    )
    body = {
        'batchDir': str(result.batch.directory),
        'fileCount': result.file_count,
        'results': [r.to_dict() for r in result.results],
    }
    if result.ok:
        body.update(success=True, message=f'Downloaded {result.file_count} files')
        return jsonify(body)

    first = result.failed[0]
    body.update(
        error='Failed to download ads',
        details=f'{len(result.failed)} of {len(result.results)} downloads failed; '
                f'first: {first.task.url}: {first.error}',
    )
    return jsonify(body), 500


@bp.app_errorhandler(AdFetchError)
def handle_adfetch_error(e):
    return jsonify(e.to_dict()), e.status_code


def create_app(ctx: AppContext = None) -> Flask:
    app = Flask(__name__)
    app.extensions['adfetch'] = ctx or AppContext()
    app.register_blueprint(bp)
    return app


if __name__ == '__main__':
    ctx = AppContext()
    app = create_app(ctx)
    port = ctx.config.port
    print("\n" + "="*50)
    print("  AdFetch — Facebook Ad Library")
    print("="*50)
    print(f"  Download folder: {ctx.config.download_dir.resolve()}")
    print(f"  Open in browser: http://localhost:{port}")
    print("="*50 + "\n")
    threading.Thread(target=ctx.check_default_token, daemon=True).start()
    if ctx.config.open_browser:
        threading.Timer(1.0, webbrowser.open, args=(f'http://localhost:{port}',)).start()
    app.run(host='0.0.0.0', port=port, debug=False)

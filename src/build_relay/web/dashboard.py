"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Build Relay</title>
<style>
  :root {
    --bg: #0d1117; --surface: #161b22; --border: #30363d;
    --text: #e6edf3; --text-muted: #8b949e; --text-dim: #6e7681;
    --triggered: #58a6ff; --running: #d29922; --success: #3fb950; --failed: #f85149;
    --link: #58a6ff;
  }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 1080px; margin: 0 auto; padding: 24px 16px; }

  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 24px; }
  header h1 { font-size: 20px; font-weight: 600; }
  header select { background: var(--surface); color: var(--text); border: 1px solid var(--border);
                  padding: 6px 12px; border-radius: 6px; font-size: 14px; cursor: pointer; }

  .summary { display: flex; gap: 16px; align-items: center; margin-bottom: 24px; flex-wrap: wrap; }
  .stat { background: var(--surface); border: 1px solid var(--border); border-radius: 8px;
          padding: 10px 16px; font-size: 14px; min-width: 120px; }
  .stat b { display: block; font-size: 20px; }

  .columns { display: grid; grid-template-columns: 2fr 1fr; gap: 20px; }
  h2 { font-size: 15px; margin-bottom: 10px; }
  .list { display: flex; flex-direction: column; gap: 2px; margin-bottom: 24px; }
  .card { background: var(--surface); border: 1px solid var(--border); border-radius: 8px; padding: 10px 14px; }
  .card-header { display: flex; align-items: center; gap: 10px; }
  .card-title { font-weight: 600; font-size: 14px; }
  .card-meta { margin-top: 4px; font-size: 12px; color: var(--text-muted); }
  .card-meta code { background: var(--bg); padding: 1px 5px; border-radius: 3px; font-size: 12px; }
  .card-meta a { color: var(--link); text-decoration: none; }
  .badge { display: inline-block; padding: 2px 10px; border-radius: 12px; font-size: 11px;
           font-weight: 600; text-transform: uppercase; letter-spacing: 0.5px; }
  .badge.triggered { background: rgba(88,166,255,0.15); color: var(--triggered); }
  .badge.running { background: rgba(210,153,34,0.15); color: var(--running); }
  .badge.success, .badge.active { background: rgba(63,185,80,0.15); color: var(--success); }
  .badge.failed, .badge.expired, .badge.inactive { background: rgba(248,81,73,0.15); color: var(--failed); }

  .empty { text-align: center; padding: 32px; color: var(--text-muted); }
  .refresh-bar { display: flex; justify-content: space-between; align-items: center;
                 margin-bottom: 16px; font-size: 12px; color: var(--text-dim); }
  .refresh-bar button { background: var(--surface); color: var(--text-muted); border: 1px solid var(--border);
                        padding: 4px 10px; border-radius: 4px; cursor: pointer; font-size: 12px; }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>Build Relay</h1>
    <select id="project-filter"><option value="">All projects</option></select>
  </header>
  <div id="summary" class="summary"></div>
  <div class="refresh-bar">
    <span id="updated">Loading...</span>
    <button onclick="refresh()">Refresh</button>
  </div>
  <div class="columns">
    <section><h2>Recent builds</h2><div id="builds" class="list"></div></section>
    <aside>
      <h2>Projects</h2><div id="projects" class="list"></div>
      <h2>Webhooks</h2><div id="webhooks" class="list"></div>
    </aside>
  </div>
</div>

<script>
let currentProject = '';

async function fetchJSON(path) {
  const res = await fetch(path);
  if (!res.ok) return null;
  return res.json();
}

async function refresh() {
  const buildsPath = currentProject
    ? `/api/builds?project=${encodeURIComponent(currentProject)}` : '/api/builds';
  const [builds, stats, projects, webhooks] = await Promise.all([
    fetchJSON(buildsPath),
    fetchJSON('/api/builds/stats'),
    fetchJSON('/api/projects'),
    fetchJSON('/api/webhooks'),
  ]);
  renderSummary(stats);
  renderBuilds(builds || []);
  renderProjects(projects || []);
  renderWebhooks(webhooks || []);
  document.getElementById('updated').textContent = `Updated ${new Date().toLocaleTimeString()}`;
}

function renderSummary(stats) {
  if (!stats) return;
  document.getElementById('summary').innerHTML = `
    <div class="stat"><b>${stats.totalBuilds}</b>builds</div>
    <div class="stat"><b>${stats.successCount}</b>succeeded</div>
    <div class="stat"><b>${stats.failedCount}</b>failed</div>
    <div class="stat"><b>${stats.repos.length}</b>repositories</div>`;
}

function renderBuilds(builds) {
  const el = document.getElementById('builds');
  if (builds.length === 0) {
    el.innerHTML = '<div class="empty">No builds yet</div>';
    return;
  }
  el.innerHTML = builds.map(b => `<div class="card">
    <div class="card-header">
      <span class="badge ${esc(b.status)}">${esc(b.status)}</span>
      <span class="card-title">${esc(b.repo)}:${esc(b.branch)}</span>
    </div>
    <div class="card-meta">
      <code>${esc((b.commit || '').slice(0, 8))}</code> ${esc(b.message)} &middot; ${esc(b.author)}
      &middot; ${new Date(b.timestamp).toLocaleString()}
      ${b.projectName ? `&middot; ${esc(b.projectName)}` : ''}
      ${b.jenkinsUrl ? `&middot; <a href="${esc(b.jenkinsUrl)}" target="_blank" rel="noopener">#${esc(b.buildId)}</a>` : ''}
    </div>
  </div>`).join('');
}

function renderProjects(projects) {
  const picker = document.getElementById('project-filter');
  const selected = picker.value;
  picker.innerHTML = '<option value="">All projects</option>' +
    projects.map(p => `<option value="${esc(p.id)}">${esc(p.name)}</option>`).join('');
  picker.value = selected;

  const el = document.getElementById('projects');
  if (projects.length === 0) {
    el.innerHTML = '<div class="empty">No projects. Create one with <code>relay project create</code></div>';
    return;
  }
  el.innerHTML = projects.map(p => `<div class="card">
    <div class="card-title">${esc(p.name)}</div>
    ${p.repos.map(r => `<div class="card-meta"><code>${esc(r.url)}</code>
      ${r.branches.map(br => `<code>${esc(br)}</code>`).join(' ')}
      ${r.isPrivate ? '&middot; private' : ''}</div>`).join('')}
  </div>`).join('');
}

function renderWebhooks(webhooks) {
  const el = document.getElementById('webhooks');
  if (webhooks.length === 0) {
    el.innerHTML = '<div class="empty">No webhooks</div>';
    return;
  }
  el.innerHTML = webhooks.map(w => {
    const state = w.isExpired ? 'expired' : (w.isActive ? 'active' : 'inactive');
    return `<div class="card">
      <div class="card-header">
        <span class="badge ${state}">${state}</span>
        <span class="card-title">${esc(w.displayName)}</span>
      </div>
      <div class="card-meta"><code>${esc(w.endpoint)}</code> &middot; ${w.triggers} triggers</div>
    </div>`;
  }).join('');
}

const ESCAPES = {'&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#39;'};

function esc(s) {
  if (s === null || s === undefined) return '';
  return String(s).replace(/[&<>"']/g, c => ESCAPES[c]);
}

document.getElementById('project-filter').addEventListener('change', (e) => {
  currentProject = e.target.value;
  refresh();
});

// Poll every 10s, and refetch as soon as the tab becomes visible again
setInterval(() => { if (!document.hidden) refresh(); }, 10000);
document.addEventListener('visibilitychange', () => { if (!document.hidden) refresh(); });

refresh();
</script>
</body>
</html>"""

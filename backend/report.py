"""Video Content Moderator - Results Report
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Turns a moderation response and its transcript into the tabbed results
page: video with an issue-annotated seek bar, the AI report, and the
per-utterance sentiment list.
"""

import re
import html
import json
import math
from typing import Optional

from categories import ModerationCategory, category_info
from timeline import (
    build_seek_markers,
    format_time,
    issue_range,
    seek_target,
    tooltip_for,
    utterance_has_issue,
)
from transcript import Utterance, format_number

TABS = ("video", "report", "sentiment")
DEFAULT_TAB = "video"

FALLBACK_RISK_SCORE = 5  # Shown when the response carries no usable score

# (category, report title, keyword used to pick descriptive sentences)
SUMMARY_SECTIONS = [
    (ModerationCategory.HATE_SPEECH, "Hate Speech", "hate speech"),
    (ModerationCategory.EXPLICIT, "Explicit Content", "explicit"),
    (ModerationCategory.HARASSMENT, "Harassment", "harass"),
    (ModerationCategory.MISINFORMATION, "Misinformation", "misinformation"),
    (ModerationCategory.GUIDELINES, "Community Guidelines Violation", "guideline"),
]

SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")

NO_OVERALL_ASSESSMENT = "No overall assessment provided."
PENDING_ANALYSIS = "Pending analysis."


def display_risk_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not score:
        return FALLBACK_RISK_SCORE
    if not math.isfinite(score):
        return FALLBACK_RISK_SCORE
    return int(score)


def get_risk_level(score) -> dict:
    """Risk band for a 1-10 score"""
    score = display_risk_score(score)
    if score <= 3:
        return {"level": "Low Risk", "color": "green"}
    if score <= 6:
        return {"level": "Medium Risk", "color": "orange"}
    return {"level": "High Risk", "color": "red"}


def severity_color(severity) -> str:
    if not isinstance(severity, (int, float)) or isinstance(severity, bool):
        return "yellow"
    if severity >= 7:
        return "red"
    if severity >= 4:
        return "orange"
    return "yellow"


def extract_sentence_containing(text: str, keyword: str, max_sentences: int = 1) -> str:
    """First sentences of text that mention keyword (case-insensitive)."""
    sentences = [s.strip() for s in SENTENCE_SPLIT_PATTERN.split(text or "") if s.strip()]
    keyword_lower = keyword.lower()
    relevant = [s for s in sentences if keyword_lower in s.lower()][:max_sentences]
    if not relevant:
        return ""
    return ". ".join(relevant) + "."


def generate_default_sections() -> list[dict]:
    return [
        {
            "title": "Policy Violations",
            "detected": False,
            "description": "No specific policy violations detected in the content.",
        },
        {
            "title": "Content Safety",
            "detected": False,
            "description": "The content appears to comply with general content guidelines.",
        },
    ]


def summarize_moderation(text: Optional[str]) -> dict:
    """
    Per-category findings and the overall verdict, read from the LLM text.

    A section is listed when its header (or its numbered list marker)
    appears; it counts as detected when YES/TRUE/DETECTED follows the
    header on the same line.
    """
    if not isinstance(text, str) or not text:
        return {"sections": generate_default_sections(), "overall": PENDING_ANALYSIS}

    sections = []
    for number, (category, title, keyword) in enumerate(SUMMARY_SECTIONS, start=1):
        header = re.escape(category.header)
        if not re.search(rf"{header}|{number}\.\s+", text, re.IGNORECASE):
            continue
        detected = re.search(rf"{header}.*?(YES|TRUE|DETECTED)", text, re.IGNORECASE) is not None
        sections.append({
            "title": title,
            "detected": detected,
            "description": extract_sentence_containing(text, keyword, 2),
        })

    overall = (
        extract_sentence_containing(text, "OVERALL ASSESSMENT", 4)
        or extract_sentence_containing(text, "overall", 3)
        or extract_sentence_containing(text, "suitable", 3)
        or NO_OVERALL_ASSESSMENT
    )

    return {
        "sections": sections or generate_default_sections(),
        "overall": overall,
    }


def _script_json(data) -> str:
    """JSON that is safe to inline inside a <script> element."""
    return (
        json.dumps(data)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def _esc(value) -> str:
    return html.escape(str(value), quote=True)


def _transcript_duration(utterances: list[Utterance]) -> float:
    return max((u.end_time for u in utterances), default=0.0)


def _render_video_tab(video_url: Optional[str], issues: list, duration: float, risk_score: int, risk: dict) -> str:
    parts = []

    if video_url:
        markers_html = ""
        for marker in build_seek_markers(issues, duration):
            markers_html += (
                f'<div class="marker" data-index="{marker["index"]}" '
                f'data-start="{marker["start"]}" data-end="{marker["end"]}" '
                f'style="left: {marker["left"]}%; width: {marker["width"]}%; '
                f'background-color: {_esc(marker["bg_color"])};"></div>'
            )

        parts.append(f"""
        <div class="player">
            <div class="video-frame">
                <video id="player" src="{_esc(video_url)}" playsinline>Your browser does not support the video tag.</video>
                <div class="play-overlay" id="play-overlay"><span>&#9654;</span></div>
            </div>
            <div class="seek-wrap">
                <div class="seek-bar" id="seek-bar" data-duration="{duration}">
                    <div class="progress" id="seek-progress"></div>
                    {markers_html}
                </div>
                <div class="times"><span id="time-current">00:00</span><span id="time-total">{format_time(duration)}</span></div>
                <div class="tooltip" id="seek-tooltip" hidden>
                    <div class="tooltip-head"><span id="tooltip-label"></span><span id="tooltip-severity"></span></div>
                    <p id="tooltip-issue"></p>
                </div>
            </div>
        </div>
        """)

    parts.append(f"""
        <div class="risk">
            <div class="risk-head">
                <span>Content Risk Score</span>
                <span class="risk-value" style="color: {risk['color']};">{risk_score}/10</span>
            </div>
            <div class="risk-track"><div class="risk-fill" style="width: {risk_score * 10}%; background-color: {risk['color']};"></div></div>
        </div>
    """)

    if issues:
        items_html = ""
        for issue in issues:
            if not isinstance(issue, dict):
                continue
            info = category_info(issue.get("category"))
            bounds = issue_range(issue)
            start = seek_target(issue.get("timestamp"))
            span = f"{format_number(bounds[0])}s - {format_number(bounds[1])}s" if bounds else _esc(issue.get("timestamp", ""))
            items_html += f"""
            <li class="issue" data-seek="{start if start is not None else ''}">
                <span class="issue-icon" role="img" aria-label="{_esc(info['label'])}">{info['icon']}</span>
                <div class="issue-body">
                    <div class="issue-head">
                        <span style="color: {_esc(info['color'])};">{_esc(info['label'])}</span>
                        <span class="issue-time">{span}</span>
                    </div>
                    <p>{_esc(issue.get('issue', ''))}</p>
                </div>
                <span class="severity-dot" style="background-color: {severity_color(issue.get('severity'))};"></span>
            </li>
            """
        parts.append(f"""
        <details class="issues">
            <summary>Content Issues by Timestamp</summary>
            <ul>{items_html}</ul>
        </details>
        """)

    return "".join(parts)


def _render_report_tab(summary: dict) -> str:
    cards_html = ""
    for section in summary["sections"]:
        status = "flagged" if section["detected"] else "clear"
        icon = "&#9888;" if section["detected"] else "&#10004;"
        cards_html += f"""
        <div class="card {status}">
            <h4><span class="status-icon">{icon}</span>{_esc(section['title'])}</h4>
            <p>{_esc(section['description'])}</p>
        </div>
        """
    return f"""
        <div class="cards">{cards_html}</div>
        <div class="overall">
            <h4>Overall Assessment</h4>
            <p>{_esc(summary['overall'])}</p>
        </div>
    """


def _render_sentiment_tab(utterances: list[Utterance], issues: list) -> str:
    if not utterances:
        return '<p class="empty">No sentiment analysis data available</p>'

    items_html = ""
    for utterance in utterances:
        emotion = utterance.dominant_emotions(1)
        sentiment = utterance.top_sentiment()
        emotion_badge = (
            f'<span class="badge emotion">{_esc(emotion[0].label)} ({emotion[0].confidence * 100:.1f}%)</span>'
            if emotion else ""
        )
        sentiment_class = sentiment.label.lower() if sentiment and sentiment.label.lower() in ("positive", "negative") else "neutral"
        sentiment_badge = (
            f'<span class="badge sentiment {sentiment_class}">{_esc(sentiment.label)} ({sentiment.confidence * 100:.1f}%)</span>'
            if sentiment else ""
        )
        flag = '<span class="flag" title="Has content issue">&#9873;</span>' if utterance_has_issue(utterance, issues) else ""
        items_html += f"""
        <li class="utterance" data-seek="{utterance.start_time}">
            <div class="badges">{emotion_badge}{sentiment_badge}</div>
            <p>"{_esc(utterance.text)}"</p>
            <p class="utterance-time">{format_number(utterance.start_time)}s - {format_number(utterance.end_time)}s {flag}</p>
        </li>
        """
    return f'<ul class="utterances">{items_html}</ul>'


def generate_report_html(
    moderation: dict,
    utterances: Optional[list[Utterance]] = None,
    video_url: Optional[str] = None,
    active_tab: str = DEFAULT_TAB,
    duration: Optional[float] = None,
) -> str:
    """Generate the tabbed results page for one analysis"""
    moderation = moderation or {}
    utterances = utterances or []
    raw_issues = moderation.get("keyTimestamps")
    issues = raw_issues if isinstance(raw_issues, list) else []
    active_tab = active_tab if active_tab in TABS else DEFAULT_TAB

    risk_score = display_risk_score(moderation.get("moderationScore"))
    risk = get_risk_level(risk_score)
    summary = summarize_moderation(moderation.get("text"))
    if not duration or duration <= 0:
        duration = _transcript_duration(utterances)

    # Hover lookup data for the page script (first match in list order wins)
    hover_issues = []
    for issue in issues:
        bounds = issue_range(issue)
        if bounds is None:
            continue
        hover_issues.append({"start": bounds[0], "end": bounds[1], **tooltip_for(issue)})

    issue_count = (
        f'<span class="issue-count">({len(issues)} issues detected)</span>' if issues else ""
    )

    def tab_attrs(name: str) -> str:
        return ' class="tab active"' if name == active_tab else ' class="tab"'

    def panel_attrs(name: str) -> str:
        return "" if name == active_tab else " hidden"

    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <title>Content Moderation Results</title>
        <style>{REPORT_CSS}</style>
    </head>
    <body>
        <div class="container">
            <header>
                <h1>Content Moderation Results</h1>
                <span class="risk-badge" style="color: {risk['color']}; border-color: {risk['color']};">{risk['level']}</span>
                {issue_count}
            </header>

            <nav class="tabs">
                <button type="button" data-tab="video"{tab_attrs('video')}>&#127909; Video &amp; Timestamps</button>
                <button type="button" data-tab="report"{tab_attrs('report')}>&#128196; AI Report</button>
                <button type="button" data-tab="sentiment"{tab_attrs('sentiment')}>&#128578; Sentiment Analysis</button>
            </nav>

            <section data-tab-panel="video"{panel_attrs('video')}>
                {_render_video_tab(video_url, issues, duration, risk_score, risk)}
            </section>
            <section data-tab-panel="report"{panel_attrs('report')}>
                {_render_report_tab(summary)}
            </section>
            <section data-tab-panel="sentiment"{panel_attrs('sentiment')}>
                {_render_sentiment_tab(utterances, issues)}
            </section>
        </div>
        <script id="issue-data" type="application/json">{_script_json(hover_issues)}</script>
        <script>{REPORT_JS}</script>
    </body>
    </html>
    """


REPORT_CSS = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
        background: #f9fafb;
        color: #111827;
        padding: 40px;
    }
    .container { max-width: 860px; margin: 0 auto; background: #fff; border: 1px solid #e5e7eb; border-radius: 12px; padding: 24px; }
    header { display: flex; align-items: center; gap: 12px; margin-bottom: 20px; }
    h1 { font-size: 20px; }
    .risk-badge { border: 1px solid; border-radius: 999px; padding: 2px 12px; font-size: 12px; font-weight: 600; }
    .issue-count { color: #6b7280; font-size: 12px; }
    .tabs { display: flex; gap: 8px; border-bottom: 1px solid #e5e7eb; margin-bottom: 24px; }
    .tab { background: none; border: none; border-bottom: 2px solid transparent; padding: 8px 16px; font-size: 14px; color: #6b7280; cursor: pointer; }
    .tab.active { border-color: #3b82f6; color: #2563eb; }
    .video-frame { position: relative; background: #000; border-radius: 8px; overflow: hidden; aspect-ratio: 16 / 9; }
    .video-frame video { width: 100%; height: 100%; }
    .play-overlay { position: absolute; inset: 0; display: flex; align-items: center; justify-content: center; cursor: pointer; color: #fff; font-size: 28px; }
    .play-overlay.playing span { display: none; }
    .seek-wrap { position: relative; margin: 8px 0 24px; }
    .seek-bar { position: relative; height: 24px; background: #e5e7eb; border-radius: 999px; cursor: pointer; }
    .progress { position: absolute; top: 0; left: 0; height: 100%; width: 0; background: #3b82f6; border-radius: 999px; }
    .marker { position: absolute; top: 0; height: 100%; z-index: 1; border-radius: 4px; }
    .times { display: flex; justify-content: space-between; font-size: 12px; color: #6b7280; margin-top: 4px; }
    .tooltip { position: fixed; z-index: 2; width: 256px; background: #fff; border: 1px solid #e5e7eb; border-radius: 6px; padding: 8px; box-shadow: 0 4px 12px rgba(0,0,0,0.12); font-size: 12px; }
    .tooltip-head { display: flex; justify-content: space-between; margin-bottom: 4px; font-weight: 600; }
    .risk { margin-bottom: 24px; }
    .risk-head { display: flex; justify-content: space-between; font-size: 14px; margin-bottom: 6px; }
    .risk-value { font-weight: 700; }
    .risk-track { height: 8px; background: #e5e7eb; border-radius: 999px; }
    .risk-fill { height: 8px; border-radius: 999px; }
    .issues summary { cursor: pointer; font-size: 14px; color: #4b5563; margin-bottom: 8px; }
    .issues ul, .utterances { list-style: none; }
    .issue, .utterance { display: flex; gap: 12px; align-items: center; padding: 8px; margin-bottom: 8px; border: 1px solid #f3f4f6; border-radius: 6px; background: #f9fafb; cursor: pointer; font-size: 12px; }
    .utterance { display: block; background: #fff; font-size: 14px; }
    .issue-body { flex-grow: 1; }
    .issue-head { display: flex; justify-content: space-between; font-weight: 600; }
    .issue-time, .utterance-time { color: #6b7280; font-size: 12px; }
    .severity-dot { width: 8px; height: 8px; border-radius: 50%; flex-shrink: 0; }
    .cards .card { border: 1px solid #f3f4f6; background: #f9fafb; border-radius: 8px; padding: 12px; margin-bottom: 16px; }
    .card h4 { margin-bottom: 4px; }
    .card.flagged .status-icon { color: #ef4444; margin-right: 8px; }
    .card.clear .status-icon { color: #22c55e; margin-right: 8px; }
    .card p { font-size: 14px; color: #4b5563; }
    .overall { border: 1px solid #dbeafe; background: #eff6ff; border-radius: 8px; padding: 16px; color: #1d4ed8; }
    .overall h4 { margin-bottom: 8px; color: #1e40af; }
    .badges { display: flex; gap: 8px; margin-bottom: 8px; }
    .badge { border-radius: 999px; padding: 2px 10px; font-size: 12px; font-weight: 600; }
    .badge.emotion { background: #f3e8ff; color: #6b21a8; }
    .badge.positive { background: #dcfce7; color: #166534; }
    .badge.negative { background: #fee2e2; color: #991b1b; }
    .badge.neutral { background: #f3f4f6; color: #1f2937; }
    .flag { color: #ef4444; }
    .empty { text-align: center; color: #6b7280; padding: 16px; }
"""

REPORT_JS = """
(function () {
    var issues = JSON.parse(document.getElementById('issue-data').textContent);
    var video = document.getElementById('player');
    var bar = document.getElementById('seek-bar');
    var tooltip = document.getElementById('seek-tooltip');
    var duration = bar ? (parseFloat(bar.dataset.duration) || 0) : 0;

    function showTab(name) {
        document.querySelectorAll('[data-tab-panel]').forEach(function (panel) {
            panel.hidden = panel.dataset.tabPanel !== name;
        });
        document.querySelectorAll('[data-tab]').forEach(function (button) {
            button.classList.toggle('active', button.dataset.tab === name);
        });
        var params = new URLSearchParams(window.location.search);
        params.set('tab', name);
        history.replaceState(null, '', '?' + params.toString());
    }

    function formatTime(t) {
        if (isNaN(t) || t < 0) return '00:00';
        var m = Math.floor(t / 60), s = Math.floor(t % 60);
        return String(m).padStart(2, '0') + ':' + String(s).padStart(2, '0');
    }

    function findIssueAt(t) {
        for (var i = 0; i < issues.length; i++) {
            if (t >= issues[i].start && t <= issues[i].end) return issues[i];
        }
        return null;
    }

    function seekTo(start) {
        if (!video || isNaN(start)) return;
        video.currentTime = start;
        if (video.paused) video.play();
        showTab('video');
    }

    function layoutMarkers() {
        if (!bar || !duration) return;
        bar.querySelectorAll('.marker').forEach(function (marker) {
            var left = Math.min(100, parseFloat(marker.dataset.start) / duration * 100);
            var right = Math.min(100, parseFloat(marker.dataset.end) / duration * 100);
            marker.style.left = left + '%';
            marker.style.width = Math.max(0, right - left) + '%';
        });
        document.getElementById('time-total').textContent = formatTime(duration);
    }

    document.querySelectorAll('[data-tab]').forEach(function (button) {
        button.addEventListener('click', function () { showTab(button.dataset.tab); });
    });

    document.querySelectorAll('[data-seek]').forEach(function (item) {
        item.addEventListener('click', function (e) {
            e.stopPropagation();
            seekTo(parseFloat(item.dataset.seek));
        });
    });

    if (video && bar) {
        var overlay = document.getElementById('play-overlay');
        overlay.addEventListener('click', function () {
            if (video.paused) video.play(); else video.pause();
        });
        video.addEventListener('play', function () { overlay.classList.add('playing'); });
        video.addEventListener('pause', function () { overlay.classList.remove('playing'); });
        video.addEventListener('loadedmetadata', function () {
            if (isFinite(video.duration) && video.duration > 0) {
                duration = video.duration;
                layoutMarkers();
            }
        });
        video.addEventListener('timeupdate', function () {
            document.getElementById('time-current').textContent = formatTime(video.currentTime);
            if (duration) {
                document.getElementById('seek-progress').style.width = (video.currentTime / duration * 100) + '%';
            }
        });

        bar.querySelectorAll('.marker').forEach(function (marker) {
            marker.addEventListener('click', function (e) {
                e.stopPropagation();
                seekTo(parseFloat(marker.dataset.start));
            });
        });

        bar.addEventListener('click', function (e) {
            var rect = bar.getBoundingClientRect();
            var t = (e.clientX - rect.left) / rect.width * duration;
            if (!isNaN(t)) video.currentTime = t;
        });

        bar.addEventListener('mousemove', function (e) {
            var rect = bar.getBoundingClientRect();
            var hovered = findIssueAt((e.clientX - rect.left) / rect.width * duration);
            if (!hovered) { tooltip.hidden = true; return; }
            document.getElementById('tooltip-label').textContent = hovered.label;
            document.getElementById('tooltip-severity').textContent = 'Severity: ' + hovered.severity + '/10';
            document.getElementById('tooltip-issue').textContent = hovered.issue;
            tooltip.style.left = Math.min(e.clientX - 120, window.innerWidth - 280) + 'px';
            tooltip.style.top = (rect.top - 70) + 'px';
            tooltip.hidden = false;
        });
        bar.addEventListener('mouseleave', function () { tooltip.hidden = true; });
    }
})();
"""

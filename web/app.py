#!/usr/bin/env python3
from __future__ import annotations

import io
import json
import re
import zipfile
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import pandas as pd
import requests
import streamlit as st

from roster_doctor import __version__
from roster_doctor.exporter import (
    CLEANED_DATA_NAME,
    RULES_NAME,
    WORKBOOK_NAME,
    build_export,
    csv_bytes,
    entity_frame,
    findings_frame,
    json_text,
    workbook_bytes,
)
from roster_doctor.loader import ALL_FORMATS, load_bytes
from roster_doctor.models import ENTITY_COLUMNS, ENTITY_TYPES
from roster_doctor.rule_suggestions import RULE_TYPES
from roster_doctor.rules import (
    DEFAULT_RULE_PRIORITY,
    PRIORITY_KEYS,
    PRIORITY_LABELS,
    WEIGHT_STEP,
    BusinessRule,
    build_rules_config,
)
from roster_doctor.search import search
from roster_doctor.store import DataStore

MAX_REMOTE_FILE_MB = 100
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
SEVERITY_CELL_STYLES = {
    "error": "background-color: #fdecea; color: #8a1c14",
    "warning": "background-color: #fff6d6; color: #7a5a00",
}
SEARCH_EXAMPLES = (
    "tasks having a Duration of more than 5",
    "workers whose skills include python",
    "clients with priority 5",
    "tasks in phase 2",
)


def ensure_state() -> None:
    st.session_state.setdefault("store", DataStore())
    st.session_state.setdefault("load_messages", [])
    st.session_state.setdefault("public_urls_input", "")
    st.session_state.setdefault("rule_text_input", "")
    st.session_state.setdefault("search_query_input", "")
    st.session_state.setdefault("rule_notice", "")


def current_store() -> DataStore:
    return st.session_state["store"]


# ══════════════════════════════════════════════════════════════════════════════
# REMOTE SOURCES
# ══════════════════════════════════════════════════════════════════════════════

def normalize_public_url(raw_url: str) -> str:
    parsed = urlparse(raw_url.strip())
    if not parsed.scheme:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    path = parsed.path
    query = parse_qs(parsed.query, keep_blank_values=True)

    if host == "github.com" and "/blob/" in path:
        owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
        owner, repo = owner_repo.split("/", 1)
        branch, file_path = blob_path.split("/", 1)
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{file_path}"

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    if host in {"drive.google.com", "docs.google.com"}:
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", path)
        if sheet_match:
            gid = query.get("gid", ["0"])[0]
            return f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export?format=csv&gid={gid}"
        match = re.search(r"/file/d/([^/]+)", path)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"

    if host.endswith("1drv.ms") or "onedrive.live.com" in host or "box.com" in host:
        query["download"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return raw_url.strip()


def parse_public_urls(raw_urls: str) -> list[str]:
    return [line.strip() for line in raw_urls.splitlines() if line.strip()]


def remote_filename(raw_url: str, response: requests.Response) -> str:
    content_disposition = response.headers.get("content-disposition", "")
    match = re.search(r'filename="([^"]+)"|filename=([^;]+)', content_disposition, re.I)
    if match:
        for group in match.groups():
            if group:
                return Path(group.strip().strip('"')).name
    redirected = response.url or raw_url
    return Path(urlparse(redirected).path).name or "roster_source"


def infer_extension(response: requests.Response, filename: str, content: bytes) -> str:
    """Suffix from the filename, then the content type, then the leading bytes."""
    ext = Path(filename).suffix.lower()
    if ext in ALL_FORMATS:
        return ext

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    content_type_map = {
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
        "application/vnd.ms-excel": ".xls",
        "text/csv": ".csv",
        "text/tab-separated-values": ".tsv",
        "application/json": ".json",
    }
    if content_type in content_type_map:
        return content_type_map[content_type]

    if content.startswith(b"PK"):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as zf:
                if "xl/workbook.xml" in zf.namelist():
                    return ".xlsx"
        except zipfile.BadZipFile:
            pass

    sample = content[:4096].decode("utf-8", errors="replace").lstrip()
    if sample.startswith(("{", "[")):
        return ".json"
    if "\t" in sample:
        return ".tsv"
    return ".csv" if sample else ext


def fetch_remote_source(raw_url: str) -> tuple[str, bytes]:
    url = normalize_public_url(raw_url)
    response = requests.get(url, timeout=60, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > MAX_REMOTE_FILE_BYTES:
            raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")

        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
        content = b"".join(chunks)
    finally:
        response.close()

    filename = remote_filename(raw_url, response)
    ext = infer_extension(response, filename, content)
    if ext not in ALL_FORMATS:
        raise ValueError(f"Unsupported remote file type: {ext or '[missing extension]'}")
    if Path(filename).suffix.lower() != ext:
        filename = f"{Path(filename).stem or 'roster_source'}{ext}"
    return filename, content


# ══════════════════════════════════════════════════════════════════════════════
# IMPORT
# ══════════════════════════════════════════════════════════════════════════════

def import_source(store: DataStore, filename: str, raw: bytes) -> list[tuple[str, str]]:
    """Merge every sheet found in one file; returns (level, message) pairs."""
    messages: list[tuple[str, str]] = []
    try:
        results = load_bytes(raw, filename)
    except (ValueError, ImportError) as exc:
        return [("error", f"{filename}: {exc}")]

    for result in results:
        added, skipped = store.merge_entities(result.entity, result.records)
        where = f"{filename} [{result.sheet_name}]" if result.sheet_name else filename
        text = f"{where}: {added} {result.entity} added"
        if skipped:
            text += f", {skipped} skipped (id already loaded)"
        messages.append(("success", text))
        if result.unmapped_columns:
            messages.append(("info", f"{where}: ignored columns {', '.join(result.unmapped_columns)}"))
        messages.extend(("warning", f"{where}: {warning}") for warning in result.warnings)
    return messages


def import_sources(store: DataStore, uploads, raw_urls: str) -> list[tuple[str, str]]:
    messages: list[tuple[str, str]] = []
    for upload in uploads:
        messages.extend(import_source(store, upload.name, upload.getvalue()))
    for url in parse_public_urls(raw_urls):
        try:
            filename, content = fetch_remote_source(url)
        except (requests.RequestException, ValueError) as exc:
            messages.append(("error", f"{url}: {exc}"))
            continue
        messages.extend(import_source(store, filename, content))
    return messages


# ══════════════════════════════════════════════════════════════════════════════
# GRID EDITS
# ══════════════════════════════════════════════════════════════════════════════

def _cell_key(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def changed_cells(entity: str, before: pd.DataFrame, after: pd.DataFrame) -> list[tuple[int, dict[str, Any]]]:
    """Per-row field edits between two grids of the same entity sheet."""
    fields_by_column = {column: name for name, column in ENTITY_COLUMNS[entity].items()}
    edits: list[tuple[int, dict[str, Any]]] = []
    for index in range(min(len(before), len(after))):
        changes = {}
        for column, name in fields_by_column.items():
            if column not in after.columns:
                continue
            old = before.iloc[index][column]
            new = after.iloc[index][column]
            if _cell_key(old) != _cell_key(new):
                changes[name] = None if _cell_key(new) == "" else new
        if changes:
            edits.append((index, changes))
    return edits


# ══════════════════════════════════════════════════════════════════════════════
# TABS
# ══════════════════════════════════════════════════════════════════════════════

def highlight_frame(frame: pd.DataFrame, cells: dict[tuple[int, str], str]):
    """Styler that paints each flagged cell by its worst severity."""

    def paint(data: pd.DataFrame) -> pd.DataFrame:
        styles = pd.DataFrame("", index=data.index, columns=data.columns)
        for (row, column), severity in cells.items():
            if row in styles.index and column in styles.columns:
                styles.loc[row, column] = SEVERITY_CELL_STYLES[severity]
        return styles

    return frame.style.apply(paint, axis=None)


def render_load_messages() -> None:
    for level, message in st.session_state.get("load_messages") or []:
        getattr(st, level)(message)


def render_upload_tab(store: DataStore) -> None:
    st.file_uploader(
        "Upload clients, workers or tasks",
        type=[ext.lstrip(".") for ext in sorted(ALL_FORMATS)],
        accept_multiple_files=True,
        key="uploads_input",
    )
    st.text_area(
        "Public file URLs",
        key="public_urls_input",
        height=90,
        placeholder="One public file URL per line. GitHub, Dropbox, Google Drive, OneDrive and Box share links are rewritten to direct downloads.",
    )
    st.caption(f"Public URL mode makes outbound network requests and rejects remote files above {MAX_REMOTE_FILE_MB} MB.")

    uploads = st.session_state.get("uploads_input") or []
    has_sources = bool(uploads) or bool(parse_public_urls(st.session_state.get("public_urls_input", "")))
    left, right = st.columns(2)
    if left.button("Import", type="primary", width="stretch", disabled=not has_sources):
        with st.spinner("Reading files..."):
            st.session_state["load_messages"] = import_sources(
                store, uploads, st.session_state.get("public_urls_input", "")
            )
        st.rerun()
    if right.button("Clear all data", width="stretch", disabled=store.snapshot.total_records == 0):
        st.session_state["store"] = DataStore(policy=store.snapshot.policy, priorities=store.snapshot.priorities)
        st.session_state["load_messages"] = []
        st.rerun()

    render_load_messages()
    snapshot = store.snapshot
    counts = st.columns(3)
    for column, entity in zip(counts, ENTITY_TYPES):
        column.metric(entity.title(), len(snapshot.records(entity)))


def render_data_tab(store: DataStore) -> None:
    snapshot = store.snapshot
    if snapshot.total_records == 0:
        st.info("Import a file to edit its rows here.")
        return

    for entity in ENTITY_TYPES:
        records = snapshot.records(entity)
        if not records:
            continue
        issues = snapshot.findings_for(entity)
        label = f"{entity.title()} ({len(records)})"
        if issues:
            label += f"  •  {len(issues)} finding(s)"
        with st.expander(label, expanded=bool(issues)):
            before = entity_frame(snapshot, entity)
            after = st.data_editor(
                highlight_frame(before, snapshot.cell_severities(entity)),
                num_rows="fixed",
                width="stretch",
                hide_index=False,
                key=f"editor_{entity}",
            )
            edits = changed_cells(entity, before, after)
            if st.button(f"Apply {len(edits)} edited row(s)", key=f"apply_{entity}", disabled=not edits):
                for index, changes in edits:
                    store.update_record(entity, index, **changes)
                st.session_state.pop(f"editor_{entity}", None)
                st.rerun()
            for finding in issues:
                line = f"`{finding.row_id}` {finding.message}"
                (st.error if finding.is_error else st.warning)(line)


def render_validation_tab(store: DataStore) -> None:
    snapshot = store.snapshot
    summary = snapshot.summary
    metrics = st.columns(4)
    metrics[0].metric("Records", snapshot.total_records)
    metrics[1].metric("Errors", summary["error_count"])
    metrics[2].metric("Warnings", summary["warning_count"])
    metrics[3].metric("With suggestions", summary["with_suggestions"])

    if snapshot.total_records == 0:
        st.info("Nothing loaded yet.")
        return
    if summary["status"] == "success":
        st.success("All records passed validation.")
        return
    if summary["export_blocked"]:
        st.error("Export is blocked until every error is fixed.")

    for finding in snapshot.findings:
        with st.expander(f"{finding.severity.upper()}  •  {finding.entity} / {finding.row_id}", expanded=finding.is_error):
            st.write(finding.message)
            if finding.field:
                st.caption(f"Field: {finding.field}")
            if finding.suggestion:
                st.info(finding.suggestion)


def render_suggestions(store: DataStore) -> None:
    for suggestion in store.snapshot.suggestions:
        with st.container(border=True):
            st.markdown(f"**{suggestion.title}**  ·  {RULE_TYPES[suggestion.type]['label']}  ·  {suggestion.confidence}% confidence")
            st.caption(suggestion.reasoning)
            st.json(suggestion.parameters)
            accept, dismiss = st.columns(2)
            if accept.button("Accept", key=f"accept_{suggestion.id}", width="stretch"):
                store.accept_suggestion(suggestion.id)
                st.rerun()
            if dismiss.button("Dismiss", key=f"dismiss_{suggestion.id}", width="stretch"):
                store.dismiss_suggestion(suggestion.id)
                st.rerun()


def render_rule_form(store: DataStore) -> None:
    with st.form("manual_rule", clear_on_submit=True):
        name = st.text_input("Rule name")
        rule_type = st.selectbox(
            "Type",
            options=list(RULE_TYPES),
            format_func=lambda key: RULE_TYPES[key]["label"],
            index=list(RULE_TYPES).index("custom"),
        )
        description = st.text_area("Description", height=80)
        parameters_text = st.text_area("Parameters (JSON object)", value="{}", height=80)
        priority = st.slider("Rule priority", 1, 100, DEFAULT_RULE_PRIORITY)
        submitted = st.form_submit_button("Add rule")

    if not submitted:
        return
    if not name.strip():
        st.error("A rule needs a name.")
        return
    try:
        parameters = json.loads(parameters_text or "{}")
        if not isinstance(parameters, dict):
            raise ValueError("Parameters must be a JSON object.")
        store.add_rule(
            BusinessRule(
                name=name.strip(),
                type=rule_type,
                description=description.strip(),
                parameters=parameters,
                priority=priority,
            )
        )
    except ValueError as exc:
        st.error(str(exc))
        return
    st.rerun()


def render_rules_tab(store: DataStore) -> None:
    st.text_area(
        "Describe a rule in plain English",
        key="rule_text_input",
        height=90,
        placeholder="e.g. Tasks T1 and T2 must run together",
    )
    if st.button("Suggest rules", type="primary", disabled=not st.session_state["rule_text_input"].strip()):
        found = store.request_suggestions(st.session_state["rule_text_input"])
        st.session_state["rule_notice"] = "" if found else "No rule could be read from that text."
        st.rerun()
    if st.session_state["rule_notice"]:
        st.info(st.session_state["rule_notice"])
    render_suggestions(store)

    st.subheader("Add a rule manually")
    render_rule_form(store)

    snapshot = store.snapshot
    st.subheader(f"Rules ({len(snapshot.rules)})")
    for rule in snapshot.rules:
        with st.container(border=True):
            head, toggle, delete = st.columns([6, 2, 2])
            head.markdown(f"**{rule.name}**  ·  {RULE_TYPES[rule.type]['label']}  ·  priority {rule.priority}")
            if rule.description:
                head.caption(rule.description)
            active = toggle.toggle("Active", value=rule.active, key=f"active_{rule.id}")
            if active != rule.active:
                store.update_rule(rule.id, active=active)
                st.rerun()
            if delete.button("Delete", key=f"delete_{rule.id}", width="stretch"):
                store.delete_rule(rule.id)
                st.rerun()

    config = build_rules_config(snapshot.rules, snapshot.priorities)
    st.download_button(
        "Download rules config",
        data=json_text(config),
        file_name="rules-config.json",
        mime="application/json",
        width="stretch",
        disabled=not config["rules"],
    )


def render_priorities_tab(store: DataStore) -> None:
    priorities = store.snapshot.priorities
    levels = priorities.impact_levels()
    updates = {}
    for key in PRIORITY_KEYS:
        updates[key] = st.slider(
            f"{PRIORITY_LABELS[key]}  ·  {levels[key]}",
            min_value=0,
            max_value=100,
            step=WEIGHT_STEP,
            value=getattr(priorities, key),
            key=f"weight_{key}",
        )
    if updates != priorities.to_dict():
        store.set_priorities(updates)
        st.rerun()

    shares = priorities.normalized_shares()
    st.caption(f"Average weight {priorities.average():.1f}")
    st.bar_chart(pd.Series({PRIORITY_LABELS[key]: shares[key] for key in PRIORITY_KEYS}, name="Share %"))


def render_search_tab(store: DataStore) -> None:
    query = st.text_input("Search in plain English", key="search_query_input", placeholder=SEARCH_EXAMPLES[0])
    st.caption("Try: " + " · ".join(SEARCH_EXAMPLES))
    if not query.strip():
        return
    snapshot = store.snapshot
    results = search(query, snapshot.clients, snapshot.workers, snapshot.tasks)
    if not results:
        st.info("No records matched.")
        return
    st.dataframe(
        pd.DataFrame([result.to_dict() for result in results], columns=["entity", "id", "match", "score"]),
        width="stretch",
        hide_index=True,
    )


def render_export_tab(store: DataStore) -> None:
    snapshot = store.snapshot
    if snapshot.total_records == 0:
        st.info("Nothing to export yet.")
        return
    if snapshot.summary["export_blocked"]:
        st.error(f"Fix {snapshot.summary['error_count']} validation error(s) before exporting.")
        st.dataframe(findings_frame([f for f in snapshot.findings if f.is_error]), width="stretch", hide_index=True)
        return

    bundle = build_export(snapshot)
    left, right = st.columns(2)
    left.download_button(
        "Download cleaned data (JSON)",
        data=json_text(bundle["cleaned_data"]),
        file_name=CLEANED_DATA_NAME,
        mime="application/json",
        width="stretch",
    )
    right.download_button(
        "Download rules (JSON)",
        data=json_text(bundle["rules"]),
        file_name=RULES_NAME,
        mime="application/json",
        width="stretch",
    )
    st.download_button(
        "Download workbook",
        data=workbook_bytes(snapshot),
        file_name=WORKBOOK_NAME,
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        width="stretch",
    )
    columns = st.columns(3)
    for column, entity in zip(columns, ENTITY_TYPES):
        column.download_button(
            f"{entity}.csv",
            data=csv_bytes(snapshot, entity),
            file_name=f"{entity}.csv",
            mime="text/csv",
            width="stretch",
            disabled=not snapshot.records(entity),
            key=f"csv_{entity}",
        )


# ══════════════════════════════════════════════════════════════════════════════
# PAGE
# ══════════════════════════════════════════════════════════════════════════════

def set_visuals() -> None:
    st.set_page_config(page_title="roster-doctor", page_icon="🩺", layout="wide", initial_sidebar_state="collapsed")
    st.markdown(
        """
        <style>
        :root {
            --rd-bg: #ffffff;
            --rd-bg-secondary: #f7f8fc;
            --rd-surface: #fbfbfe;
            --rd-text: #23232b;
            --rd-border: #e3e4ee;
            --rd-primary: #5b6cff;
            --rd-primary-strong: #3f51f5;
        }
        @media (prefers-color-scheme: dark) {
            :root {
                --rd-bg: #17171c;
                --rd-bg-secondary: #1f1f27;
                --rd-surface: #262631;
                --rd-text: #f1f1f6;
                --rd-border: rgba(80, 80, 96, 0.8);
                --rd-primary: #8c98ff;
                --rd-primary-strong: #5b6cff;
            }
        }
        .stApp {
            background: linear-gradient(180deg, var(--rd-bg) 0%, var(--rd-bg-secondary) 100%);
            color: var(--rd-text);
        }
        .block-container {
            padding-top: 2rem;
            max-width: 1200px;
        }
        [data-testid="stDecoration"] {
            display: none !important;
        }
        .stButton > button, .stDownloadButton > button, .stFormSubmitButton > button {
            border-radius: 999px !important;
            background: linear-gradient(135deg, var(--rd-primary) 0%, var(--rd-primary-strong) 100%) !important;
            color: #ffffff !important;
            font-weight: 600 !important;
        }
        .stButton > button:disabled, .stDownloadButton > button:disabled {
            opacity: 0.5 !important;
        }
        [data-testid="stMetric"] {
            background: var(--rd-surface);
            border: 1px solid var(--rd-border);
            border-radius: 16px;
            padding: 0.8rem 1rem;
        }
        .stExpander, .stDataFrame {
            border-radius: 16px;
            border: 1px solid var(--rd-border) !important;
            overflow: hidden;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def main() -> None:
    set_visuals()
    ensure_state()
    store = current_store()

    st.title("roster-doctor")
    st.caption(
        f"v{__version__} · Load client, worker and task sheets, fix what the validator flags, "
        "turn plain-English rules into structured ones, and export clean data."
    )

    summary = store.snapshot.summary
    validation_label = "Validation"
    if summary["error_count"] or summary["warning_count"]:
        validation_label += f" ({summary['error_count']}E/{summary['warning_count']}W)"

    tabs = st.tabs(["Upload", "Data", validation_label, "Rules", "Priorities", "Search", "Export"])
    with tabs[0]:
        render_upload_tab(store)
    with tabs[1]:
        render_data_tab(store)
    with tabs[2]:
        render_validation_tab(store)
    with tabs[3]:
        render_rules_tab(store)
    with tabs[4]:
        render_priorities_tab(store)
    with tabs[5]:
        render_search_tab(store)
    with tabs[6]:
        render_export_tab(store)


if __name__ == "__main__":
    main()

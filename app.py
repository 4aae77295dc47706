import logging

import streamlit as st
import pandas as pd
import altair as alt

import config
import db
from analytics import compute_analytics
from engine import FileQueue, PipelineSimulator, ACCEPTED_EXTENSIONS
from export import EmptyExportError, export_csv, export_excel, EXPORT_FILE_NAME
from insights import generate_analytics_insights
from mock_data import generate_batch, cached_sheet_image
from models import (
    SECTIONS,
    SECTION_MAX,
    STATUS_FILTERS,
    STATUS_NEEDS_REVIEW,
    FILE_COMPLETE,
    FILE_ERROR,
    NAV_VIEWS,
    VIEW_UPLOAD,
    VIEW_PROCESSING,
    VIEW_RESULTS,
    VIEW_ANALYTICS,
)
from review import ReviewState, COLUMNS
from store import ResultStore, ResultNotFound, available_views

config.setup_logging()
logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(
    page_title=f"{config.APP_TITLE} - OMR Evaluation Dashboard",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed"
)

# Base CSS (light theme) for better styling
st.markdown("""
<style>
    :root {
        --bg: #F8FAFC;
        --card: #FFFFFF;
        --muted: #E2E8F0;
        --accent: #4F46E5;
        --success: #16A34A;
        --warning: #D97706;
        --danger: #DC2626;
        --text: #1E293B;
        --subtext: #64748B;
    }
    .topbar {
        background: var(--card);
        border: 1px solid var(--muted);
        border-radius: 12px;
        padding: 1rem 1.25rem;
        margin-bottom: 0.75rem;
    }
    .brand { font-size: 1.4rem; font-weight: 800; color: var(--text); }
    .brand span { font-weight: 300; color: var(--subtext); }
    .stat-grid { display: grid; grid-template-columns: repeat(2, 1fr); gap: 12px; margin-bottom: 1rem; }
    .stat-card { background: var(--card); border: 1px solid var(--muted); border-radius: 12px; padding: 1rem; text-align: center; }
    .stat-label { color: var(--subtext); font-size: 0.85rem; }
    .stat-value { color: var(--accent); font-size: 2rem; font-weight: 800; }
    .badge { padding: 2px 8px; border-radius: 999px; font-size: 0.75rem; font-weight: 600; }
    .badge-review { background: #FEF3C7; color: #92400E; }
    .badge-complete { background: #DCFCE7; color: #166534; }
    .answer-ok { background: #DCFCE7; border-radius: 4px; padding: 2px 6px; margin: 2px 0; }
    .answer-bad { background: #FEE2E2; border-radius: 4px; padding: 2px 6px; margin: 2px 0; }
    .block-container { max-width: 1200px; padding-top: 1rem; }
</style>
""", unsafe_allow_html=True)


def init_state():
    if 'view' not in st.session_state:
        st.session_state.view = VIEW_UPLOAD
    if 'store' not in st.session_state:
        st.session_state.store = ResultStore.load()
    if 'demo_mode' not in st.session_state:
        st.session_state.demo_mode = False
    if 'demo_store' not in st.session_state:
        st.session_state.demo_store = None
    if 'queue' not in st.session_state:
        st.session_state.queue = FileQueue()
    if 'batch' not in st.session_state:
        st.session_state.batch = []  # files handed to the processing view
    if 'review' not in st.session_state:
        st.session_state.review = ReviewState()
    # Flag to safely clear the uploader before widget instantiation
    if 'clear_omr_upl' not in st.session_state:
        st.session_state.clear_omr_upl = False
    if 'confirm_delete' not in st.session_state:
        st.session_state.confirm_delete = False
    if 'insights' not in st.session_state:
        st.session_state.insights = ""
    if 'sheet_cache' not in st.session_state:
        st.session_state.sheet_cache = {}


def get_store() -> ResultStore:
    """Demo Mode works on a throwaway generated batch; the real store is never touched."""
    if st.session_state.demo_mode:
        if st.session_state.demo_store is None:
            batch = generate_batch(25)
            st.session_state.demo_store = ResultStore(batch, total_processed=len(batch))
        return st.session_state.demo_store
    return st.session_state.store


def set_view(view):
    st.session_state.view = view


def status_badge(status: str) -> str:
    css = "badge-review" if status == STATUS_NEEDS_REVIEW else "badge-complete"
    return f'<span class="badge {css}">{status}</span>'


with st.sidebar:
    st.toggle("Demo Mode", key="demo_mode", help="Browse generated results without uploading anything")
    with st.expander("Admin"):
        if st.button("Reset DB (Drop & Recreate)"):
            try:
                db.reset_database()
                st.session_state.store = ResultStore(persist=True)
                st.session_state.review = ReviewState()
                st.session_state.insights = ""
                st.session_state.view = VIEW_UPLOAD
                st.success("Database reset.")
            except Exception as e:
                logger.exception("Database reset failed")
                st.error(f"Reset failed: {e}")


def header(store: ResultStore):
    st.markdown(f"""
    <div class="topbar">
        <div class="brand">{config.APP_TITLE} <span>OMR evaluation dashboard</span></div>
    </div>
    """, unsafe_allow_html=True)
    enabled = available_views(store.has_results)
    cols = st.columns(len(NAV_VIEWS) + 3)
    for col, v in zip(cols, NAV_VIEWS):
        with col:
            st.button(
                v.capitalize(),
                key=f"nav_{v}",
                disabled=not enabled[v] or st.session_state.view == VIEW_PROCESSING,
                type="primary" if st.session_state.view == v else "secondary",
                on_click=set_view,
                args=(v,),
                use_container_width=True,
            )


def main():
    init_state()
    store = get_store()
    header(store)

    view = st.session_state.view
    if view in (VIEW_RESULTS, VIEW_ANALYTICS) and not store.has_results:
        view = st.session_state.view = VIEW_UPLOAD

    if view == VIEW_PROCESSING:
        # graded sheets always go to the saved store, never the demo batch
        processing_view(st.session_state.store)
    elif view == VIEW_RESULTS:
        results_view(store)
    elif view == VIEW_ANALYTICS:
        analytics_view(store)
    else:
        upload_view(store)


# ---------------------------------------------------------------- upload

def upload_view(store: ResultStore):
    queue: FileQueue = st.session_state.queue

    if store.total_processed > 0:
        st.markdown(f"""
        <div class="stat-grid">
          <div class="stat-card">
            <div class="stat-value">{store.total_processed}</div>
            <div class="stat-label">Total Sheets Processed</div>
          </div>
          <div class="stat-card">
            <div class="stat-value">~1.2s</div>
            <div class="stat-label">Avg. Processing Time</div>
          </div>
        </div>
        """, unsafe_allow_html=True)

    st.header("Automated OMR Sheet Evaluation")
    st.caption("Upload your scanned OMR sheets to start the automated grading process.")

    if st.session_state.demo_mode:
        st.info("Demo Mode shows generated results only. Turn it off to upload and grade your own sheets.")
        return

    # If last run asked to clear the uploader, do it BEFORE creating the widget
    if st.session_state.clear_omr_upl:
        if 'omr_upl' in st.session_state:
            del st.session_state['omr_upl']
        st.session_state.clear_omr_upl = False

    uploaded = st.file_uploader(
        "Drag & drop files here or browse",
        type=[ext.lstrip(".") for ext in ACCEPTED_EXTENSIONS.split(",")],
        accept_multiple_files=True,
        help=f"Supports: JPG, PNG, PDF, ZIP. Max size: {config.MAX_UPLOAD_MB}MB",
        key="omr_upl",
    )
    if uploaded:
        _, rejected = queue.add_many(
            (up.name, up.getvalue(), up.type, getattr(up, "file_id", None)) for up in uploaded
        )
        if rejected:
            st.warning(f"Skipped unsupported or oversized files: {', '.join(rejected)}")
        # Files now live in the queue; empty the uploader
        st.session_state.clear_omr_upl = True
        st.rerun()

    if len(queue) == 0:
        return

    c1, c2 = st.columns([4, 1])
    with c1:
        st.subheader(f"File Queue ({len(queue)})")
    with c2:
        if st.button("Clear Queue", use_container_width=True):
            queue.clear()
            st.rerun()

    for f in queue:
        col_img, col_name, col_rm = st.columns([1, 6, 1])
        with col_img:
            if f.is_image and f.data:
                st.image(f.data, width=48)
            else:
                st.markdown("📄")
        with col_name:
            st.markdown(f"**{f.name}**")
            st.caption(f"{f.size / 1024:.2f} KB")
        with col_rm:
            if st.button("✖", key=f"rm_{f.id}", help="Remove from queue"):
                queue.remove(f.id)
                st.rerun()

    n = len(queue)
    if st.button(f"Start Processing {n} {'File' if n == 1 else 'Files'}", type="primary"):
        st.session_state.batch = queue.take()
        st.session_state.view = VIEW_PROCESSING
        st.rerun()


# ---------------------------------------------------------------- processing

def processing_view(store: ResultStore):
    st.header("Processing OMR Sheets")
    files = st.session_state.batch
    if not files:
        st.session_state.view = VIEW_UPLOAD
        st.rerun()

    summary = st.empty()
    overall = st.progress(0)
    col_preview, col_queue = st.columns(2)
    with col_preview:
        st.subheader("Live Preview")
        preview = st.empty()
    with col_queue:
        st.subheader("Processing Queue")
        queue_box = st.empty()

    simulator = PipelineSimulator()
    final = None
    for snap in simulator.run(files):
        summary.caption(f"Processing {snap.completed_count} of {snap.total} files. Elapsed time: {snap.elapsed}s")
        overall.progress(int(snap.overall_progress))

        current = snap.current_file
        with preview.container():
            if current is not None:
                if current.is_image and current.data:
                    st.image(current.data, use_container_width=True)
                st.markdown(f"**{current.name}**")
                st.caption(f"{current.status.capitalize()}...")
            else:
                st.success("Processing Complete!")

        with queue_box.container():
            for f in snap.files:
                icon = "✅" if f.status == FILE_COMPLETE else ("❌" if f.status == FILE_ERROR else "⏳")
                st.markdown(f"{icon} {f.name}")
                st.progress(100 if f.status == FILE_COMPLETE else int(f.progress), text=f.status)
        final = snap

    store.add_results(final.results)
    st.session_state.batch = []
    if final.error_count:
        logger.info("%d sheet(s) failed processing", final.error_count)
    st.session_state.view = VIEW_RESULTS if store.has_results else VIEW_UPLOAD
    st.rerun()


# ---------------------------------------------------------------- results

def _selection_key(review: ReviewState) -> int:
    # Checkbox widgets are re-created whenever the selection changes elsewhere
    return abs(hash(frozenset(review.selected_ids))) % 10**8


def _toggle(result_id):
    st.session_state.review.toggle(result_id)


def _select_all(key, results):
    st.session_state.review.select_all_on_page(st.session_state[key], results)


def _on_search():
    st.session_state.review.set_search(st.session_state.search_box)


def _on_status():
    st.session_state.review.set_status_filter(st.session_state.status_box)


@st.dialog("Review result", width="large")
def result_dialog(store: ResultStore, result_id: str):
    try:
        result = store.get(result_id)
    except ResultNotFound:
        st.warning("This result no longer exists.")
        return
    st.subheader(f"Review: {result.student_id}")
    c1, c2 = st.columns(2)
    with c1:
        st.markdown("**Original OMR Sheet**")
        st.image(cached_sheet_image(st.session_state.sheet_cache, result), use_container_width=True)
    with c2:
        st.markdown("**Detailed Breakdown**")
        st.markdown(
            f"**Total Score:** {result.total_score} / 100  \n"
            f"**Status:** {status_badge(result.status)}  \n"
            f"**Confidence:** {result.confidence * 100:.1f}%",
            unsafe_allow_html=True,
        )
        st.markdown("**Section Scores**")
        st.dataframe(
            pd.DataFrame([{"Section": s, "Score": f"{result.section_scores[s]} / {SECTION_MAX}"} for s in SECTIONS]),
            hide_index=True, use_container_width=True,
        )
        st.markdown("**Answers**")
        with st.container(height=240):
            for a in result.answers:
                css = "answer-ok" if a.is_correct else "answer-bad"
                extra = "" if a.is_correct else f" <small>(Correct: {a.correct_answer})</small>"
                st.markdown(f'<div class="{css}">Q{a.question}: Your answer <b>{a.student_answer}</b>{extra}</div>',
                            unsafe_allow_html=True)
    if result.needs_review and st.button("Approve Result", type="primary"):
        store.approve(result.id)
        st.rerun()


def export_panel(store: ResultStore):
    with st.expander("Export Filtered Results"):
        c1, c2, c3 = st.columns(3)
        with c1:
            status = st.radio("Status", STATUS_FILTERS, horizontal=True, key="export_status")
        with c2:
            start = st.date_input("From", value=None, key="export_start")
        with c3:
            end = st.date_input("To", value=None, key="export_end")
        try:
            csv_data = export_csv(store.results, status, start, end)
            xlsx_data = export_excel(store.results, status, start, end)
        except EmptyExportError as e:
            st.info(str(e))
            return
        d1, d2 = st.columns(2)
        with d1:
            st.download_button("Download CSV", data=csv_data, file_name=f"{EXPORT_FILE_NAME}.csv",
                               mime="text/csv", use_container_width=True)
        with d2:
            st.download_button("Download Excel", data=xlsx_data, file_name=f"{EXPORT_FILE_NAME}.xlsx",
                               mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                               use_container_width=True)


def results_view(store: ResultStore):
    review: ReviewState = st.session_state.review
    results = store.results
    review.clamp_page(results)

    st.header("Evaluation Results")
    export_panel(store)

    f1, f2 = st.columns([2, 3])
    with f1:
        st.text_input("Search Student ID...", value=review.search_term, key="search_box",
                      on_change=_on_search, label_visibility="collapsed", placeholder="Search Student ID...")
    with f2:
        st.radio("Status", STATUS_FILTERS, index=STATUS_FILTERS.index(review.status_filter), key="status_box",
                 on_change=_on_status, horizontal=True, label_visibility="collapsed")

    rows = review.page_rows(results)
    sig = _selection_key(review)
    widths = [0.5, 2, 1.3, 1.3, 1.6, 1.2, 0.8, 0.8]

    head = st.columns(widths)
    with head[0]:
        all_key = f"sel_all_{review.current_page}_{sig}"
        st.checkbox("all", value=review.all_selected_on_page(results), key=all_key,
                    on_change=_select_all, args=(all_key, results), label_visibility="collapsed",
                    disabled=not rows)
    for col, (key, name) in zip(head[1:], COLUMNS):
        with col:
            st.button(f"{name} {review.sort_indicator(key)}".strip(), key=f"sort_{key}",
                      on_click=review.request_sort, args=(key,), use_container_width=True)

    if not rows:
        st.info("No results match the current search and filter.")
    for r in rows:
        cols = st.columns(widths)
        with cols[0]:
            st.checkbox("select", value=r.id in review.selected_ids, key=f"sel_{r.id}_{sig}",
                        on_change=_toggle, args=(r.id,), label_visibility="collapsed")
        cols[1].markdown(f"**{r.student_id}**")
        cols[2].markdown(f"{r.total_score} / 100")
        cols[3].markdown(status_badge(r.status), unsafe_allow_html=True)
        cols[4].markdown(r.processing_date.strftime("%Y-%m-%d"))
        cols[5].markdown(f"{r.confidence * 100:.1f}%")
        cols[6].markdown(r.exam_set)
        with cols[7]:
            if st.button("View", key=f"view_{r.id}"):
                result_dialog(store, r.id)

    # Pagination & batch actions
    b1, b2, b3 = st.columns([3, 3, 2])
    with b1:
        if review.selected_ids:
            n = len(review.selected_ids)
            st.markdown(f"**{n} selected**")
            a1, a2 = st.columns(2)
            with a1:
                if st.button("Approve", key="batch_approve"):
                    review.approve_selected(store)
                    st.rerun()
            with a2:
                if not st.session_state.confirm_delete:
                    if st.button("Delete", key="batch_delete"):
                        st.session_state.confirm_delete = True
                        st.rerun()
                else:
                    st.warning(f"Are you sure you want to delete {n} results?")
                    if st.button("Yes, delete", key="batch_delete_yes", type="primary"):
                        review.delete_selected(store)
                        st.session_state.confirm_delete = False
                        st.rerun()
                    if st.button("Cancel", key="batch_delete_no"):
                        st.session_state.confirm_delete = False
                        st.rerun()
        else:
            first, last, total = review.showing(results)
            st.caption(f"Showing {first} to {last} of {total} results")
    with b3:
        p1, p2, p3 = st.columns([1, 1, 1])
        pages = review.total_pages(results)
        with p1:
            st.button("‹", key="page_prev", disabled=review.current_page <= 1,
                      on_click=review.prev_page, args=(results,))
        with p2:
            st.caption(f"{review.current_page} / {max(pages, 1)}")
        with p3:
            st.button("›", key="page_next", disabled=review.current_page >= pages,
                      on_click=review.next_page, args=(results,))


# ---------------------------------------------------------------- analytics

def analytics_view(store: ResultStore):
    st.header("Performance Analytics")
    data = compute_analytics(store.results)

    st.markdown(f"""
    <div class="stat-grid">
      <div class="stat-card">
        <div class="stat-label">Average Score</div>
        <div class="stat-value">{data['avg_score']:.1f}</div>
      </div>
      <div class="stat-card">
        <div class="stat-label">Pass Rate</div>
        <div class="stat-value">{data['pass_rate']:.1f}%</div>
      </div>
    </div>
    """, unsafe_allow_html=True)

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Section-wise Average Scores")
        section_df = pd.DataFrame(data["section_avgs"]).rename(columns={"name": "Section", "avg_score": "Avg Score / 20"})
        chart = (
            alt.Chart(section_df)
            .mark_bar()
            .encode(
                y=alt.Y('Section:N', sort=SECTIONS, title=None),
                x=alt.X('Avg Score / 20:Q', scale=alt.Scale(domain=[0, SECTION_MAX])),
                color=alt.Color('Section:N', scale=alt.Scale(scheme='category10'), legend=None),
                tooltip=['Section', alt.Tooltip('Avg Score / 20:Q', format='.1f')]
            )
            .properties(height=300, background='transparent')
            .configure_view(stroke=None)
        )
        st.altair_chart(chart, use_container_width=True)

    with col2:
        st.subheader("Top 10 Most Difficult Questions")
        q_df = pd.DataFrame(data["question_difficulty"]).rename(columns={"name": "Question", "incorrect": "% Incorrect"})
        chart = (
            alt.Chart(q_df)
            .mark_bar(color='#ef4444')
            .encode(
                y=alt.Y('Question:N', sort=None, title=None),
                x=alt.X('% Incorrect:Q', scale=alt.Scale(domain=[0, 100])),
                tooltip=['Question', alt.Tooltip('% Incorrect:Q', format='.1f')]
            )
            .properties(height=300, background='transparent')
            .configure_view(stroke=None)
        )
        st.altair_chart(chart, use_container_width=True)

    st.subheader("Grade Distribution")
    grade_df = pd.DataFrame([{"Grade": g, "Count": c} for g, c in data["grade_distribution"].items()])
    pie_chart = (
        alt.Chart(grade_df)
        .mark_arc(innerRadius=40)
        .encode(
            theta=alt.Theta('Count:Q'),
            color=alt.Color('Grade:N', scale=alt.Scale(scheme='category10')),
            tooltip=['Grade', 'Count']
        )
        .properties(height=260, background='transparent')
        .configure_view(stroke=None)
    )
    st.altair_chart(pie_chart, use_container_width=True)

    st.subheader("AI-Powered Insights")
    if st.session_state.insights:
        st.markdown(st.session_state.insights)
        if st.button("Regenerate Insights"):
            st.session_state.insights = ""
            st.rerun()
    elif st.button("Generate AI Insights", type="primary"):
        with st.spinner("Analysing results..."):
            st.session_state.insights = generate_analytics_insights(store.results)
        st.rerun()


if __name__ == "__main__":
    main()

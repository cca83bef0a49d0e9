"""
Boxworks — Interactive Dashboard

Run with:  streamlit run app.py
"""

import sys
from pathlib import Path

import streamlit as st
import plotly.graph_objects as go
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent))

from boxworks_dashboard import store
from boxworks_dashboard.config import DB_PATH, PAGE_NOTE_ROLES, RAG_COLORS, ROLES
from boxworks_dashboard.dashboard import (
    get_available_periods,
    get_director_overview,
    get_monthly_trend,
    get_orders_table,
    get_production_overview,
    get_sales_overview,
    get_team_totals,
)
from boxworks_dashboard.fiscal import all_fiscal_month_names, date_range_of
from boxworks_dashboard.forms import (
    FormError,
    batch_form_values,
    batch_from_form,
    order_form_values,
    order_from_form,
)
from boxworks_dashboard.importer import TransactionPolicy, import_orders, import_production
from boxworks_dashboard.loaders import (
    CSVStructureError,
    export_filename,
    format_orders_for_export,
    format_production_for_export,
    template_filename,
    template_frame,
    to_csv_bytes,
)
from boxworks_dashboard.records import DashboardNote, Settings, SettingsError
from boxworks_dashboard.simulator import seed_demo_data

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Boxworks Dashboard",
    page_icon="📦",
    layout="wide",
    initial_sidebar_state="expanded",
)


# ---------------------------------------------------------------------------
# Store (demo data seeded once per process, one connection per session)
# ---------------------------------------------------------------------------
@st.cache_resource
def ensure_demo_data(path) -> bool:
    seed_conn = store.connect(path)
    try:
        if store.load_users(seed_conn).empty:
            seed_demo_data(seed_conn)
    finally:
        seed_conn.close()
    return True


ensure_demo_data(DB_PATH)
conn = store.session_connection(st.session_state, DB_PATH)
settings = store.load_settings(conn)

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("Boxworks")
st.sidebar.markdown("Sales & Production Dashboard")
st.sidebar.divider()

role = st.sidebar.selectbox("View as", list(ROLES), format_func=str.title)

sales_reps = store.load_users(conn, role="sales")
rep_id = None
if role == "sales" and not sales_reps.empty:
    rep_name = st.sidebar.selectbox("Sales rep", sales_reps["name"].tolist())
    rep_id = int(sales_reps.loc[sales_reps["name"] == rep_name, "id"].iloc[0])

periods = get_available_periods(settings)
selected_fy = st.sidebar.selectbox(
    "Financial year",
    periods["fiscal_years"],
    index=periods["fiscal_years"].index(periods["default_fy"]),
)
selected_month = st.sidebar.selectbox(
    "Month",
    periods["months"],
    index=periods["months"].index(periods["default_month"]),
)

pages = {
    "sales": ["Sales Dashboard", "Records"],
    "production": ["Production Dashboard", "Records"],
    "director": [
        "Director Overview", "Sales Dashboard", "Production Dashboard",
        "Records", "Users", "Settings", "CSV Import / Export",
    ],
}
page = st.sidebar.radio("Navigate", pages[role])

st.sidebar.divider()
st.sidebar.caption(f"Financial year starts in {all_fiscal_month_names(settings.fiscal_year_start_month)[0]}")

period_start, period_end = date_range_of(selected_fy, selected_month, settings.fiscal_year_start_month)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def rag_card(label: str, value: str, target: str | None, card: dict):
    color = RAG_COLORS.get(card["status"], "#95a5a6")
    target_str = f"Target: {target} &nbsp;|&nbsp; " if target is not None else ""

    st.markdown(
        f"""
        <div class="{card['css_class']}"
             style="background: linear-gradient(135deg, {color}22, {color}11);
                    border-left: 4px solid {color};
                    border-radius: 8px; padding: 16px; margin-bottom: 8px;">
            <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">{label}</div>
            <div style="font-size: 28px; font-weight: 700; color: #222; margin: 4px 0;">{value}</div>
            <div style="font-size: 13px; color: #666;">
                {target_str}<span style="color: {color}; font-weight: 600;">{card['label']}</span>
            </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def note_editor(note_role: str):
    current = store.get_note(conn, selected_fy, selected_month, note_role)
    with st.form(f"note_{note_role}"):
        text = st.text_area("Dashboard note", value=current)
        if st.form_submit_button("Save note"):
            store.save_note(conn, DashboardNote(selected_fy, selected_month, note_role, text))
            st.success("Note saved")


def visible_orders(start=None, end=None):
    # Reps only see their own orders
    return store.load_orders(conn, start, end, sales_rep_id=rep_id if role == "sales" else None)


def order_form(key: str, initial: dict, order_rep_id: int | None):
    """Order fields; a director also picks the sales rep, a rep always books to themselves."""
    values = {}
    with st.form(key):
        col1, col2, col3 = st.columns(3)
        with col1:
            values["order_date"] = st.date_input("Order date", value=initial["order_date"])
            values["order_ref"] = st.text_input("Reference", value=initial["order_ref"])
            values["boxes_qty"] = st.number_input("Boxes", value=initial["boxes_qty"], min_value=1, step=1)
        with col2:
            values["box_rrp_total"] = st.number_input("Box RRP total (£)", value=initial["box_rrp_total"])
            values["box_net_total"] = st.number_input("Box net total (£)", value=initial["box_net_total"])
            values["box_build_cost_total"] = st.number_input(
                "Box build cost total (£)", value=initial["box_build_cost_total"]
            )
        with col3:
            values["install_revenue"] = st.number_input(
                "Install revenue (£)", value=initial["install_revenue"], min_value=0.0
            )
            values["extras_revenue"] = st.number_input(
                "Extras revenue (£)", value=initial["extras_revenue"], min_value=0.0
            )
            if role == "director":
                choices = [None] + sales_reps["id"].astype(int).tolist()
                names = dict(zip(sales_reps["id"].astype(int), sales_reps["name"]))
                order_rep_id = st.selectbox(
                    "Sales rep", choices,
                    index=choices.index(order_rep_id) if order_rep_id in choices else 0,
                    format_func=lambda i: "(none)" if i is None else names[i],
                )
            else:
                order_rep_id = rep_id
        values["notes"] = st.text_area("Notes", value=initial["notes"])
        submitted = st.form_submit_button("Save order")
    return submitted, values, order_rep_id


def batch_form(key: str, initial: dict, reasons: list[dict]):
    """Production fields plus an editable table of over-cost reason tags."""
    values = {}
    with st.form(key):
        col1, col2 = st.columns(2)
        with col1:
            values["production_date"] = st.date_input("Production date", value=initial["production_date"])
            values["boxes_built"] = st.number_input("Boxes built", value=initial["boxes_built"], min_value=0, step=1)
        with col2:
            values["boxes_over_cost"] = st.number_input(
                "Boxes over cost", value=initial["boxes_over_cost"], min_value=0, step=1
            )
            values["rework_boxes"] = st.number_input(
                "Rework boxes", value=initial["rework_boxes"], min_value=0, step=1
            )
        tags = st.data_editor(
            pd.DataFrame(reasons, columns=["reason", "boxes"]),
            num_rows="dynamic",
            key=f"{key}_reasons",
        )
        values["notes"] = st.text_area("Notes", value=initial["notes"])
        submitted = st.form_submit_button("Save entry")
    return submitted, values, tags.to_dict("records")


# ===========================================================================
# PAGE: Director Overview
# ===========================================================================
if page == "Director Overview":
    st.title("Director Overview")
    st.caption(f"Period: **{selected_fy} {selected_month}**")

    orders = store.load_orders(conn)
    batches = store.load_production(conn)
    overview = get_director_overview(orders, batches, settings, selected_fy, selected_month)
    consolidated = overview["consolidated"]

    cols = st.columns(3)
    with cols[0]:
        rag_card("Boxes sold", f"{consolidated['boxes_sold']:,}",
                 f"{consolidated['monthly_box_target']:,}", overview["sales"]["status"]["boxes"])
    with cols[1]:
        rag_card("Boxes built", f"{consolidated['boxes_built']:,}",
                 f"{consolidated['monthly_box_target']:,}", overview["production"]["status"]["boxes"])
    with cols[2]:
        st.metric("Sold minus built", f"{consolidated['sold_minus_built']:+,}")

    st.subheader(f"Monthly trend — {selected_fy}")
    trend = get_monthly_trend(orders, batches, settings, selected_fy)
    fig = go.Figure()
    fig.add_trace(go.Bar(x=trend["month"], y=trend["boxes_sold"], name="Sold", marker_color="#3498db"))
    fig.add_trace(go.Bar(x=trend["month"], y=trend["boxes_built"], name="Built", marker_color="#9b59b6"))
    fig.add_trace(go.Scatter(
        x=trend["month"],
        y=trend["monthly_box_target"],
        name="Target",
        mode="lines+markers",
        line=dict(color="#e74c3c", width=2, dash="dash"),
    ))
    fig.update_layout(barmode="group", height=400, plot_bgcolor="rgba(0,0,0,0)")
    st.plotly_chart(fig, use_container_width=True)

    note_editor(PAGE_NOTE_ROLES[page])


# ===========================================================================
# PAGE: Sales Dashboard
# ===========================================================================
elif page == "Sales Dashboard":
    st.title("Sales Dashboard")
    st.caption(f"Period: **{selected_fy} {selected_month}**")

    orders = visible_orders()
    overview = get_sales_overview(orders, settings, selected_fy, selected_month)
    m = overview["metrics"]
    status = overview["status"]

    cols = st.columns(3)
    with cols[0]:
        rag_card("Boxes sold", f"{m['boxes_sold']:,}", f"{m['monthly_box_target']:,}", status["boxes"])
    with cols[1]:
        rag_card("Baseline", f"£{m['baseline_actual']:,.0f}", f"£{m['baseline_target']:,.0f}", status["baseline"])
    with cols[2]:
        rag_card("Discount impact", f"{m['discount_boxes_lost_total']:.1f} boxes",
                 None, status["discount"])

    if role == "sales":
        team = get_team_totals(store.load_orders(conn), period_start, period_end)
        st.caption(f"Team: {team['total_boxes']} boxes across {team['total_orders']} orders")

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Observed mix")
        mix = m["observed_mix"]
        fig = go.Figure(go.Pie(
            labels=["Boxes", "Installs", "Extras"],
            values=[mix["box_revenue"], mix["install_revenue"], mix["extras_revenue"]],
            hole=0.5,
        ))
        fig.update_layout(height=320, margin=dict(l=10, r=10, t=10, b=10))
        st.plotly_chart(fig, use_container_width=True)
    with col2:
        st.subheader("Shape & momentum")
        shape = m["shape_metrics"]
        st.metric("Orders", shape["orders_count"])
        st.metric("Avg boxes / order", f"{shape['avg_boxes_per_order']:.2f}")
        st.metric("Avg baseline / box", f"£{shape['avg_baseline_per_box']:,.0f}")
        st.metric("Rolling 4-week boxes / week", f"{shape['rolling_4_week_boxes_per_week']:.1f}")
        st.metric("Average discount", f"{m['average_discount_pct']:.1f}%")

    st.subheader("Orders this month")
    table = get_orders_table(visible_orders(period_start, period_end), settings)
    st.dataframe(table, use_container_width=True, hide_index=True)

    note_editor(PAGE_NOTE_ROLES[page])


# ===========================================================================
# PAGE: Production Dashboard
# ===========================================================================
elif page == "Production Dashboard":
    st.title("Production Dashboard")
    st.caption(f"Period: **{selected_fy} {selected_month}**")

    overview = get_production_overview(
        store.load_production(conn), store.load_orders(conn), settings, selected_fy, selected_month
    )
    m = overview["metrics"]
    status = overview["status"]

    cols = st.columns(3)
    with cols[0]:
        rag_card("Boxes built", f"{m['boxes_built']:,}", f"{m['monthly_box_target']:,}", status["boxes"])
    with cols[1]:
        rag_card("Cost compliance", f"{m['cost_compliance_pct']:.1f}%", "95%", status["cost_compliance"])
    with cols[2]:
        rag_card("Rework rate", f"{m['quality_metrics']['rework_rate']:.1f}%", "3%", status["quality"])

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Cost leakage")
        reasons = pd.DataFrame(m["cost_leakage"]["reasons"], columns=["reason", "count", "boxes"])
        if reasons.empty:
            st.info("No over-cost boxes this month.")
        else:
            fig = go.Figure(go.Bar(
                x=reasons["boxes"],
                y=reasons["reason"],
                orientation="h",
                marker_color="#f39c12",
                text=reasons["count"].apply(lambda c: f"{c} tags"),
                textposition="outside",
            ))
            fig.update_layout(height=300, plot_bgcolor="rgba(0,0,0,0)", margin=dict(l=10, r=10, t=10, b=40))
            st.plotly_chart(fig, use_container_width=True)
    with col2:
        st.subheader("Flow")
        flow = m["flow_metrics"]
        load = flow["install_load"]
        st.metric("Rolling 4-week average built", f"{flow['rolling_4_week_avg']:.1f}")
        st.metric("Backlog", f"{flow['backlog']:,}")
        st.metric("Installs / week", f"{load['installs_per_week']:.1f}", delta=f"capacity {load['capacity']}",
                  delta_color="off")
        st.metric("Install shape", f"{m['install_shape']['install_shape_pct']:.0f}%")

    note_editor(PAGE_NOTE_ROLES[page])


# ===========================================================================
# PAGE: Records
# ===========================================================================
elif page == "Records":
    st.title("Records")
    st.caption(f"{period_start:%d %b %Y} – {period_end:%d %b %Y}")

    if role in ("sales", "director"):
        st.subheader("Orders")
        orders = visible_orders(period_start, period_end)
        st.dataframe(get_orders_table(orders, settings), use_container_width=True, hide_index=True)

        with st.expander("New order"):
            submitted, values, order_rep = order_form("new_order", order_form_values(), rep_id)
            if submitted:
                try:
                    store.insert_order(conn, order_from_form(values, sales_rep_id=order_rep))
                except FormError as e:
                    st.error(str(e))
                else:
                    st.rerun()

        if orders:
            with st.expander("Edit, duplicate or delete an order"):
                order_id = st.selectbox("Order", [o.id for o in orders], format_func=lambda i: f"#{i}")
                current = store.get_order(conn, order_id)
                submitted, values, order_rep = order_form(
                    f"edit_order_{order_id}", order_form_values(current), current.sales_rep_id
                )
                if submitted:
                    try:
                        store.update_order(conn, order_from_form(values, sales_rep_id=order_rep, order_id=order_id))
                    except FormError as e:
                        st.error(str(e))
                    else:
                        st.rerun()

                col1, col2 = st.columns(2)
                with col1:
                    # A rep's copy is credited to them, a director's keeps the original rep
                    if st.button("Duplicate order"):
                        copy_id = store.duplicate_order(conn, order_id, sales_rep_id=rep_id)
                        st.success(f"Created order #{copy_id}")
                with col2:
                    if role == "director" and st.button("Delete order"):
                        store.delete_order(conn, order_id)
                        st.rerun()

    if role in ("production", "director"):
        st.subheader("Production")
        batches = store.load_production(conn, period_start, period_end)
        st.dataframe(format_production_for_export(batches), use_container_width=True, hide_index=True)

        with st.expander("New production entry"):
            submitted, values, reasons = batch_form("new_batch", *batch_form_values())
            if submitted:
                try:
                    store.insert_batch(conn, batch_from_form(values, reasons))
                except FormError as e:
                    st.error(str(e))
                else:
                    st.rerun()

        if batches:
            with st.expander("Edit or delete a production entry"):
                batch_id = st.selectbox("Entry", [b.id for b in batches], format_func=lambda i: f"#{i}")
                submitted, values, reasons = batch_form(
                    f"edit_batch_{batch_id}", *batch_form_values(store.get_batch(conn, batch_id))
                )
                if submitted:
                    try:
                        store.update_batch(conn, batch_from_form(values, reasons, batch_id=batch_id))
                    except FormError as e:
                        st.error(str(e))
                    else:
                        st.rerun()
                if role == "director" and st.button("Delete entry"):
                    store.delete_batch(conn, batch_id)
                    st.rerun()


# ===========================================================================
# PAGE: Users
# ===========================================================================
elif page == "Users":
    st.title("Users")
    users = store.load_users(conn)
    st.dataframe(users, use_container_width=True, hide_index=True)

    with st.expander("Add user"):
        with st.form("new_user"):
            name = st.text_input("Name")
            email = st.text_input("Email")
            user_role = st.selectbox("Role", list(ROLES), format_func=str.title)
            if st.form_submit_button("Add user"):
                try:
                    store.add_user(conn, name, email, user_role)
                except ValueError as e:
                    st.error(str(e))
                else:
                    st.rerun()

    if not users.empty:
        with st.expander("Edit or delete a user"):
            user_id = int(st.selectbox(
                "User", users["id"].tolist(),
                format_func=lambda i: users.loc[users["id"] == i, "name"].iloc[0],
            ))
            user = store.get_user(conn, user_id)
            with st.form(f"edit_user_{user_id}"):
                name = st.text_input("Name", value=user["name"])
                email = st.text_input("Email", value=user["email"])
                user_role = st.selectbox("Role", list(ROLES), index=list(ROLES).index(user["role"]),
                                         format_func=str.title)
                if st.form_submit_button("Save user"):
                    try:
                        store.update_user(conn, user_id, name, email, user_role)
                    except ValueError as e:
                        st.error(str(e))
                    else:
                        st.rerun()
            st.caption("Deleting a sales rep keeps their orders, with no rep assigned.")
            if st.button("Delete user"):
                store.delete_user(conn, user_id)
                st.rerun()


# ===========================================================================
# PAGE: Settings
# ===========================================================================
elif page == "Settings":
    st.title("Settings")

    with st.form("settings"):
        floor = st.number_input("Baseline floor per box (£)", value=float(settings.baseline_floor_per_box), min_value=0.0)
        yearly = st.number_input("Yearly box target", value=int(settings.yearly_box_target), min_value=0, step=1)
        amber = st.number_input("Amber floor (fraction of target)", value=float(settings.amber_floor_fraction),
                                min_value=0.01, max_value=0.99, step=0.01)
        capacity = st.number_input("Install capacity per week (high season)",
                                   value=int(settings.install_capacity_per_week), min_value=0, step=1)
        start_month = st.number_input("Financial year start month", value=int(settings.fiscal_year_start_month),
                                      min_value=1, max_value=12, step=1)

        st.markdown("**Monthly box targets**")
        month_cols = st.columns(6)
        targets = {}
        for i, name in enumerate(all_fiscal_month_names(settings.fiscal_year_start_month)):
            with month_cols[i % 6]:
                targets[name] = st.number_input(
                    name, value=int(settings.monthly_box_targets.get(name, 0)), min_value=0, step=1
                )

        if st.form_submit_button("Save settings"):
            updated = Settings(
                baseline_floor_per_box=floor,
                yearly_box_target=int(yearly),
                amber_floor_fraction=amber,
                monthly_box_targets={k: int(v) for k, v in targets.items()},
                install_capacity_per_week=int(capacity),
                fiscal_year_start_month=int(start_month),
            )
            try:
                store.save_settings(conn, updated)
                st.success("Settings saved")
            except SettingsError as e:
                st.error(str(e))


# ===========================================================================
# PAGE: CSV Import / Export
# ===========================================================================
elif page == "CSV Import / Export":
    st.title("CSV Import / Export")

    policy = st.radio(
        "Transaction granularity",
        list(TransactionPolicy),
        format_func=lambda p: "Commit each row" if p is TransactionPolicy.PER_ROW else "All rows in one transaction",
        horizontal=True,
    )

    for kind, importer in (("orders", import_orders), ("production", import_production)):
        st.subheader(kind.title())
        col1, col2, col3 = st.columns(3)

        with col1:
            uploaded = st.file_uploader(f"Import {kind}", type="csv", key=f"upload_{kind}")
            if uploaded is not None and st.button(f"Run {kind} import"):
                try:
                    result = importer(conn, uploaded, policy)
                except CSVStructureError as e:
                    st.error(f"Import error: {e}")
                else:
                    st.success(result.summary())
                    for err in result.errors:
                        st.write(err)

        with col2:
            frame = (
                format_orders_for_export(store.load_orders(conn)) if kind == "orders"
                else format_production_for_export(store.load_production(conn))
            )
            st.download_button(
                f"Export {kind}",
                data=to_csv_bytes(frame),
                file_name=export_filename(kind),
                mime="text/csv",
            )

        with col3:
            st.download_button(
                f"{kind.title()} template",
                data=to_csv_bytes(template_frame(kind)),
                file_name=template_filename(kind),
                mime="text/csv",
            )

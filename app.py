"""
app.py
Streamlit operator console for the membership & billing engine.
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date, timedelta

import pandas as pd
import streamlit as st

import clients
import db
import invoices
import ledger
import migration
import overdue
import payments
import plans
import revenue
import roster
import utils
from config import Config
from errors import GymError, ValidationError
from logger_config import setup_logging
from models import Bucket, Channel, MembershipStatus, PaymentMethod

st.set_page_config(page_title="Gym Membership & Billing", layout="wide")

METHODS = [m.value for m in PaymentMethod]


@st.cache_resource
def init_once():
    Config.ensure_directories()
    setup_logging()
    db.init_db()
    return True


def show_error(e: GymError) -> None:
    if isinstance(e, ValidationError):
        for field, reason in e.errors.items():
            st.error(f"{field}: {reason}")
    else:
        st.error(str(e))


def frame(records, columns: list[str] | None = None) -> pd.DataFrame:
    df = pd.DataFrame([vars(r) for r in records])
    if df.empty and columns:
        return pd.DataFrame(columns=columns)
    return df


def pick_client(label: str = "Client", key: str = "client_pick"):
    all_clients = clients.list_clients()
    if not all_clients:
        st.info("No clients yet. Add a client first.")
        return None
    options = {f"{c.name} ({c.document_id}) - ID {c.id}": c for c in all_clients}
    chosen = st.selectbox(label, list(options.keys()), key=key)
    return options[chosen]


def pick_plan(label: str = "Plan", key: str = "plan_pick"):
    active = plans.list_plans(active_only=True)
    if not active:
        st.info("No active plans. Create a plan first.")
        return None
    options = {f"{p.name} - {p.price} / {p.duration_days} days": p for p in active}
    chosen = st.selectbox(label, list(options.keys()), key=key)
    return options[chosen]


# ---------- Pages ----------

def dashboard_page():
    st.header("📊 Dashboard")
    today = date.today()

    entries = roster.rank_all(today)
    due = overdue.list_overdue(today)
    month_rows = revenue.aggregate(today.replace(day=1), today, Channel.BOTH)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Active clients", sum(1 for e in entries if e.bucket is Bucket.ACTIVE))
    c2.metric("Renewal due", sum(1 for e in entries if e.bucket is Bucket.RENEWAL))
    c3.metric("In collections", len(due))
    c4.metric("Revenue this month", f"{month_rows[-1].total:.2f}")

    st.divider()
    st.subheader("Expiring in the next 7 days")
    in_7 = today + timedelta(days=7)
    soon = [
        {"client": e.client.name, "phone": e.client.phone, "end_date": e.latest_end_date}
        for e in entries
        if e.bucket is Bucket.ACTIVE and e.latest_end_date and e.latest_end_date <= in_7
    ]
    if soon:
        st.dataframe(pd.DataFrame(soon), use_container_width=True, hide_index=True)
    else:
        st.caption("No memberships expiring in the next 7 days.")


def clients_page():
    st.header("👥 Clients")

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/document/phone)")
        bucket = st.selectbox("Status", ["All"] + [b.value for b in Bucket])

    entries = roster.rank_all(date.today(), None if bucket == "All" else bucket, search)
    rows = [
        {
            "id": e.client.id,
            "name": e.client.name,
            "document_id": e.client.document_id,
            "phone": e.client.phone,
            "status": e.bucket.value,
            "latest_end_date": e.latest_end_date,
            "days_since_expired": e.days_since_expired,
            "suggest_inactivation": e.suggest_inactivation,
            "inactive": e.client.is_inactive,
        }
        for e in entries
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
    if entries:
        st.download_button(
            "Download clients.csv",
            data=utils.records_to_csv_bytes([e.client for e in entries]),
            file_name="clients.csv",
            mime="text/csv",
        )

    st.divider()
    st.subheader("➕ Add client")
    col1, col2 = st.columns(2)
    with col1:
        document_id = st.text_input("Document ID")
        name = st.text_input("Name")
        phone = st.text_input("Phone (WhatsApp)")
        email = st.text_input("Email (optional)")
    with col2:
        birth_date = st.date_input("Birth date", value=None)
        weight = st.number_input("Weight (kg)", min_value=0.0, value=0.0)
        medical = st.text_area("Medical restrictions (optional)")

    if st.button("Save client", type="primary"):
        try:
            clients.create_client(document_id, name, phone, email, birth_date, weight or None, medical)
            st.success("Client added.")
            st.rerun()
        except GymError as e:
            show_error(e)

    st.divider()
    st.subheader("Client actions")
    client = pick_client(key="client_actions")
    if client is None:
        return
    c1, c2, c3 = st.columns(3)
    with c1:
        label = "Mark active" if client.is_inactive else "Mark inactive"
        if st.button(label):
            clients.set_inactive(client.id, not client.is_inactive)
            st.rerun()
    with c2:
        account = st.text_input("Link online account", value=client.account_ref or "")
        if st.button("Link account"):
            try:
                clients.link_account(client.document_id, account)
                st.success("Account linked.")
            except GymError as e:
                show_error(e)
    with c3:
        confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
        if st.button("Delete", type="secondary", disabled=not confirm):
            try:
                clients.delete_client(client.id)
                st.success("Client deleted.")
                st.rerun()
            except GymError as e:
                show_error(e)


def plans_page():
    st.header("📋 Plans")
    st.dataframe(frame(plans.list_plans()), use_container_width=True, hide_index=True)

    st.subheader("➕ Add plan")
    c1, c2, c3 = st.columns(3)
    with c1:
        name = st.text_input("Plan name")
    with c2:
        price = st.text_input("Price", value="100000")
    with c3:
        duration = st.number_input("Duration (days)", min_value=1, value=30)
    description = st.text_input("Description (optional)")
    if st.button("Save plan", type="primary"):
        try:
            plans.create_plan(name, price, int(duration), description)
            st.success("Plan created.")
            st.rerun()
        except GymError as e:
            show_error(e)

    st.divider()
    all_plans = plans.list_plans()
    if all_plans:
        options = {f"{p.name} (ID {p.id})": p for p in all_plans}
        chosen = options[st.selectbox("Deactivate plan", list(options.keys()))]
        if st.button("Deactivate"):
            try:
                plans.delete_plan(chosen.id)
                st.success("Plan deactivated.")
                st.rerun()
            except GymError as e:
                show_error(e)


def memberships_page():
    st.header("🗓️ Memberships")
    client = pick_client()
    if client is None:
        return
    today = date.today()

    periods = ledger.list_periods(client.id)
    rows = [
        {
            "id": p.id,
            "plan_id": p.plan_id,
            "start_date": p.start_date,
            "end_date": p.end_date,
            "stored_status": p.status.value,
            "status": ledger.derive_current_status(p, today).value,
            "price": p.plan_price,
        }
        for p in periods
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    st.subheader("Renew (record payment)")
    plan = pick_plan()
    if plan is None:
        return
    nxt = ledger.compute_next_period(client.id, plan.id, today=today)
    st.info(
        f"Next period: **{nxt.start} → {nxt.end}**"
        + (" (advance payment)" if nxt.is_advance_payment else "")
    )
    c1, c2, c3 = st.columns(3)
    with c1:
        amount = st.text_input("Amount", value=str(plan.price))
    with c2:
        method = st.selectbox("Method", METHODS)
    with c3:
        invoice_required = st.checkbox("Invoice required")
    notes = st.text_input("Notes", value="")

    if st.button("Renew", type="primary"):
        try:
            period, payment, advance = payments.renew(
                client.id, plan.id, method, amount=amount, notes=notes,
                invoice_required=invoice_required, today=today,
            )
            st.success(f"Membership {period.start_date} → {period.end_date}, invoice #{payment.invoice_number}.")
            st.rerun()
        except GymError as e:
            show_error(e)

    st.divider()
    st.subheader("Cancel / reactivate / courtesy")
    if periods:
        options = {f"#{p.id} {p.start_date} → {p.end_date} ({p.status.value})": p for p in periods}
        chosen = options[st.selectbox("Membership", list(options.keys()))]
        c1, c2 = st.columns(2)
        with c1:
            if st.button("Cancel membership", disabled=chosen.status is MembershipStatus.CANCELLED):
                ledger.cancel(chosen.id)
                st.rerun()
        with c2:
            if st.button("Reactivate", disabled=chosen.status is not MembershipStatus.CANCELLED):
                try:
                    ledger.reactivate(chosen.id)
                    st.rerun()
                except GymError as e:
                    show_error(e)
    if st.button("Grant courtesy period"):
        try:
            ledger.grant_courtesy(client.id, plan.id, today=today)
            st.rerun()
        except GymError as e:
            show_error(e)


def payments_page():
    st.header("💳 Payments")
    with st.sidebar:
        start = st.date_input("From", value=date.today().replace(day=1))
        end = st.date_input("To", value=date.today())

    records = payments.list_payments(start=start, end=end)
    df = frame(records)
    st.dataframe(df, use_container_width=True, hide_index=True)
    if records:
        st.download_button(
            "Download payments.csv",
            data=utils.records_to_csv_bytes(records),
            file_name="payments.csv",
            mime="text/csv",
        )


def collections_page():
    st.header("⏰ Collections")
    limit = st.selectbox("Max days overdue", ["all", 7, 15, 30, 60, 90])
    entries = overdue.list_overdue(date.today(), None if limit == "all" else int(limit))
    if entries:
        st.dataframe(frame(entries), use_container_width=True, hide_index=True)
        st.download_button(
            "Download collections.csv",
            data=utils.records_to_csv_bytes(entries),
            file_name="collections.csv",
            mime="text/csv",
        )
    else:
        st.caption("Everybody is up to date.")


def revenue_page():
    st.header("🧾 Revenue")
    c1, c2, c3 = st.columns(3)
    with c1:
        start = st.date_input("Start", value=date.today().replace(day=1))
    with c2:
        end = st.date_input("End", value=date.today())
    with c3:
        channel = st.selectbox("Channel", [c.value for c in Channel], index=2)

    try:
        rows = revenue.aggregate(start, end, channel)
        st.dataframe(revenue.to_frame(rows), use_container_width=True, hide_index=True)
    except GymError as e:
        show_error(e)

    st.subheader("Gym revenue by month")
    st.dataframe(revenue.monthly_summary(), use_container_width=True, hide_index=True)


def maintenance_page():
    st.header("⚙️ Maintenance")

    st.subheader("Normalize invoice numbers")
    st.caption("Re-pads historical invoice numbers and fills missing ones. Safe to run again.")
    if st.button("Normalize"):
        report = invoices.normalize()
        st.success(
            f"{len(report.assigned)} assigned, {len(report.repadded)} re-padded, {report.skipped} unchanged."
        )

    st.divider()
    st.subheader("Import report")
    st.caption(
        "CSV export with one row per sale (AFILIADO, DOCUMENTO, INICIO, FIN, PRODUCTO, VLR. PAGADO...). "
        "Clients are matched by document ID; rows already imported are skipped."
    )
    uploaded = st.file_uploader("Report (.csv)", type=["csv"])
    method = st.selectbox("Payment method for imported sales", METHODS, key="import_method")
    if uploaded is not None and st.button("Import"):
        report = migration.run_import(uploaded, method)
        st.success(
            f"{report.clients_created} clients created, {report.clients_updated} updated, "
            f"{report.plans_created} plans, {report.periods_created} memberships, "
            f"{report.payments_recorded} payments."
        )
        if report.skipped:
            st.warning(f"{len(report.skipped)} rows skipped.")
            st.dataframe(
                pd.DataFrame(report.skipped, columns=["row", "reason"]),
                use_container_width=True,
                hide_index=True,
            )

    st.divider()
    st.subheader("Sample data")
    st.caption("Insert 3 sample clients, a plan and a few payments for testing.")
    if st.button("Insert sample data"):
        utils.insert_sample_data()
        st.success("Sample data inserted.")
        st.rerun()


PAGES = {
    "Dashboard": dashboard_page,
    "Clients": clients_page,
    "Plans": plans_page,
    "Memberships": memberships_page,
    "Payments": payments_page,
    "Collections": collections_page,
    "Revenue": revenue_page,
    "Maintenance": maintenance_page,
}


def run():
    init_once()
    st.sidebar.title("🏋️ Gym Billing")
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    names = list(PAGES.keys())
    st.session_state.page = st.sidebar.radio("Navigate", names, index=names.index(st.session_state.page))
    PAGES[st.session_state.page]()


if __name__ == "__main__":
    run()

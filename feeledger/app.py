from __future__ import annotations

from datetime import datetime
from tkinter import messagebox, ttk
from typing import Any

import customtkinter as ctk

from .auth import AdminAuth, Session, SessionStore
from .constants import APP_NAME, MONTHS
from .dashboard import DashboardController
from .errors import AuthError
from .logger import ErrorLogger, configure_logging
from .models import PaymentStatus
from .service import LedgerService, Result
from .settings_store import SettingsStore
from .views import STATUS_FILTERS

STATUS_COLORS = {
    PaymentStatus.PAID: "#16a34a",
    PaymentStatus.UNPAID: "#dc2626",
    PaymentStatus.FREE: "#2563eb",
}

PROFILE_FIELDS = [
    ("id", "Desk / ID (blank = auto)"),
    ("username", "Name"),
    ("email", "Email"),
    ("mobile", "Mobile"),
    ("aadhar_number", "Aadhar Number"),
    ("monthly_fee", "Monthly Fee"),
    ("subscription_start", "Subscription Start (YYYY-MM-DD)"),
    ("subscription_end", "Subscription End (blank = +1 month)"),
]


def _safe_int(s: str, default: int) -> int:
    try:
        return int(s)
    except ValueError:
        return default


class LedgerApp(ctk.CTk):
    """Admin dashboard: one table of students for the selected month."""

    def __init__(self, settings_store: SettingsStore | None = None):
        super().__init__()

        self.err_logger = ErrorLogger()
        self.settings_store = settings_store or SettingsStore()
        self.settings = self.settings_store.load()
        self._apply_ui_settings()

        self.title(APP_NAME)
        self.geometry("1180x720")
        self.minsize(980, 620)

        self.service = LedgerService.from_settings(self.settings, err_logger=self.err_logger)
        self.controller = DashboardController(self.service, self.settings.default_monthly_fee)
        self.auth = AdminAuth(self.settings)
        self.session_store = SessionStore()
        self.session: Session | None = self.session_store.load(datetime.now(), self.auth.max_age)
        self._action_buttons: list[ctk.CTkButton] = []

        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(0, weight=1)

        if self.session is None:
            self._show_login()
        else:
            self._show_dashboard()

    # Tkinter callback errors can be silent; log them.
    def report_callback_exception(self, exc, val, tb):  # type: ignore[override]
        try:
            self.err_logger.log_exception(val, f"tk_callback: {exc}")
        finally:
            super().report_callback_exception(exc, val, tb)

    def _apply_ui_settings(self) -> None:
        mode = (self.settings.appearance_mode or "System").strip().capitalize()
        if mode not in {"Light", "Dark", "System"}:
            mode = "System"
        ctk.set_appearance_mode(mode)
        ctk.set_default_color_theme("blue")
        # Using the same value for window+widget scaling avoids fractional blur.
        ctk.set_window_scaling(self.settings.ui_scaling)
        ctk.set_widget_scaling(self.settings.ui_scaling)

    def _on_close(self) -> None:
        try:
            self.service.close()
        finally:
            self.destroy()

    def _clear(self) -> None:
        for child in self.winfo_children():
            child.destroy()
        self._action_buttons = []

    def _card(self, parent: Any, **kwargs: Any) -> ctk.CTkFrame:
        return ctk.CTkFrame(parent, corner_radius=14, border_width=1, border_color=("#e5e7eb", "#1f2937"), **kwargs)

    # ---------------- Login ----------------
    def _show_login(self) -> None:
        self._clear()
        card = self._card(self)
        card.grid(row=0, column=0, padx=40, pady=40)
        ctk.CTkLabel(card, text=APP_NAME, font=ctk.CTkFont(size=22, weight="bold")).grid(
            row=0, column=0, columnspan=2, padx=24, pady=(24, 12)
        )
        ctk.CTkLabel(card, text="Email").grid(row=1, column=0, padx=(24, 8), pady=8, sticky="w")
        email = ctk.CTkEntry(card, width=260)
        email.insert(0, self.settings.admin_email)
        email.grid(row=1, column=1, padx=(0, 24), pady=8)
        ctk.CTkLabel(card, text="Password").grid(row=2, column=0, padx=(24, 8), pady=8, sticky="w")
        password = ctk.CTkEntry(card, width=260, show="*")
        password.grid(row=2, column=1, padx=(0, 24), pady=8)
        error = ctk.CTkLabel(card, text="", text_color="#dc2626")
        error.grid(row=3, column=0, columnspan=2, padx=24)

        def submit(_event: Any = None) -> None:
            try:
                self.session = self.auth.login(email.get(), password.get(), datetime.now())
            except AuthError as e:
                error.configure(text=str(e))
                return
            self.session_store.save(self.session)
            self._show_dashboard()

        password.bind("<Return>", submit)
        ctk.CTkButton(card, text="Sign in", command=submit).grid(
            row=4, column=0, columnspan=2, padx=24, pady=(12, 24), sticky="ew"
        )

    def _logout(self) -> None:
        self.session_store.clear()
        self.session = None
        self._show_login()

    # ---------------- Dashboard ----------------
    def _show_dashboard(self) -> None:
        self._clear()
        page = ctk.CTkFrame(self, corner_radius=0)
        page.grid(row=0, column=0, sticky="nsew")
        page.grid_columnconfigure(0, weight=1)
        page.grid_rowconfigure(3, weight=1)

        header = ctk.CTkFrame(page, corner_radius=0)
        header.grid(row=0, column=0, sticky="ew")
        header.grid_columnconfigure(0, weight=1)
        ctk.CTkLabel(header, text="Student Management", font=ctk.CTkFont(size=22, weight="bold")).grid(
            row=0, column=0, sticky="w", padx=18, pady=(18, 2)
        )
        self.period_label = ctk.CTkLabel(header, text="", font=ctk.CTkFont(size=13))
        self.period_label.grid(row=1, column=0, sticky="w", padx=18, pady=(0, 12))
        ctk.CTkButton(header, text="Log out", width=90, command=self._logout).grid(row=0, column=1, padx=18)

        filters = self._card(page)
        filters.grid(row=1, column=0, sticky="ew", padx=18, pady=(0, 12))
        ctk.CTkLabel(filters, text="Month").grid(row=0, column=0, padx=(12, 6), pady=12)
        self.month_menu = ctk.CTkOptionMenu(filters, values=MONTHS, command=lambda _v: self._period_changed())
        self.month_menu.set(MONTHS[self.controller.month])
        self.month_menu.grid(row=0, column=1, padx=6, pady=12)
        ctk.CTkLabel(filters, text="Year").grid(row=0, column=2, padx=(12, 6), pady=12)
        self.year_entry = ctk.CTkEntry(filters, width=90)
        self.year_entry.insert(0, str(self.controller.year))
        self.year_entry.bind("<Return>", lambda _e: self._period_changed())
        self.year_entry.grid(row=0, column=3, padx=6, pady=12)
        ctk.CTkLabel(filters, text="Show").grid(row=0, column=4, padx=(12, 6), pady=12)
        self.filter_menu = ctk.CTkOptionMenu(
            filters, values=list(STATUS_FILTERS), command=lambda _v: self._period_changed()
        )
        self.filter_menu.grid(row=0, column=5, padx=6, pady=12)
        ctk.CTkButton(filters, text="Refresh", command=self.refresh).grid(row=0, column=6, padx=12, pady=12)

        self.stats_label = ctk.CTkLabel(page, text="", anchor="w", font=ctk.CTkFont(size=13, weight="bold"))
        self.stats_label.grid(row=2, column=0, sticky="ew", padx=18, pady=(0, 8))

        self.tree = self._make_students_tree(page)

        actions = ctk.CTkFrame(page, corner_radius=0)
        actions.grid(row=4, column=0, sticky="ew", padx=18, pady=12)
        for col, (label, command) in enumerate(
            [
                ("Paid", lambda: self._set_status("paid")),
                ("Unpaid", lambda: self._set_status("unpaid")),
                ("Free", lambda: self._set_status("free")),
                ("Remind", self._remind),
                ("Register", self._register),
                ("Edit", self._edit),
                ("Delete", self._delete),
            ]
        ):
            btn = ctk.CTkButton(actions, text=label, width=110, command=command)
            btn.grid(row=0, column=col, padx=6)
            self._action_buttons.append(btn)

        self.toast = ctk.CTkLabel(page, text="", anchor="w")
        self.toast.grid(row=5, column=0, sticky="ew", padx=18, pady=(0, 12))

        self.refresh()

    def _make_students_tree(self, parent: ctk.CTkFrame) -> ttk.Treeview:
        wrap = ctk.CTkFrame(parent, corner_radius=0)
        wrap.grid_columnconfigure(0, weight=1)
        wrap.grid_rowconfigure(0, weight=1)
        columns = ("id", "name", "mobile", "fee", "status")
        tree = ttk.Treeview(wrap, columns=columns, show="headings", selectmode="browse")
        for key, text, width in [
            ("id", "Desk", 100),
            ("name", "Name", 260),
            ("mobile", "Mobile", 160),
            ("fee", "Monthly Fee", 120),
            ("status", "Status", 120),
        ]:
            tree.heading(key, text=text)
            tree.column(key, width=width, anchor="w")
        for status, color in STATUS_COLORS.items():
            tree.tag_configure(status.value, foreground=color)
        vsb = ttk.Scrollbar(wrap, orient="vertical", command=tree.yview)
        tree.configure(yscrollcommand=vsb.set)
        tree.grid(row=0, column=0, sticky="nsew")
        vsb.grid(row=0, column=1, sticky="ns")
        wrap.grid(row=3, column=0, sticky="nsew", padx=18)
        return tree

    def _period_changed(self) -> None:
        month = MONTHS.index(self.month_menu.get())
        year = _safe_int(self.year_entry.get().strip(), self.controller.year)
        self.controller.select_period(month, year)
        self.controller.status_filter = self.filter_menu.get()
        self._render()

    def refresh(self) -> None:
        res = self.controller.refresh()
        if not res["success"]:
            self._notify(res)
        self._render()

    def _render(self) -> None:
        self.period_label.configure(text=f"Currently managing {self.controller.period_label}")
        stats = self.controller.stats()
        self.stats_label.configure(
            text=(
                f"Collected: Rs.{stats.collected:,.0f}    Pending: Rs.{stats.pending:,.0f}    "
                f"Students: {stats.active_students}    Free: {stats.free_students}"
            )
        )
        selected = self._selected_id()
        self.tree.delete(*self.tree.get_children())
        for row in self.controller.rows():
            fee = "Free" if row.monthly_fee == 0 else f"Rs.{row.monthly_fee:,.0f}"
            self.tree.insert(
                "",
                "end",
                iid=row.id,
                values=(row.id, row.username, row.mobile, fee, row.status.value),
                tags=(row.status.value,),
            )
        if selected and self.tree.exists(selected):
            self.tree.selection_set(selected)

    def _selected_id(self) -> str | None:
        sel = self.tree.selection() if hasattr(self, "tree") else ()
        return sel[0] if sel else None

    def _notify(self, res: Result) -> None:
        color = "#16a34a" if res.get("success") else "#dc2626"
        self.toast.configure(text=str(res.get("message", "")), text_color=color)

    def _busy(self, busy: bool) -> None:
        # Buttons stay disabled for the whole call so a double click cannot race.
        for btn in self._action_buttons:
            btn.configure(state="disabled" if busy else "normal")
        self.update_idletasks()

    def _run(self, fn, *args: Any) -> Result:
        self._busy(True)
        try:
            return fn(*args)
        finally:
            self._busy(False)

    # ---------------- Actions ----------------
    def _set_status(self, status: str) -> None:
        sid = self._selected_id()
        if not sid:
            return
        res = self._run(self.controller.set_status, sid, status)
        self._notify(res)
        self._render()

    def _remind(self) -> None:
        sid = self._selected_id()
        if not sid:
            return
        self._notify(self._run(self.controller.remind, sid))

    def _register(self) -> None:
        data = self._student_dialog("Register Student", {"subscription_start": datetime.now().date().isoformat()})
        if data is None:
            return
        res = self._run(self.controller.register, data)
        self._notify(res)
        self._render()

    def _edit(self) -> None:
        sid = self._selected_id()
        student = self.controller.find(sid) if sid else None
        if student is None:
            return
        initial = {
            "id": student.id,
            "username": student.username,
            "email": student.email,
            "mobile": student.mobile,
            "aadhar_number": student.aadhar_number,
            "monthly_fee": f"{student.monthly_fee:g}",
            "subscription_start": student.subscription_start.isoformat() if student.subscription_start else "",
            "subscription_end": student.subscription_end.isoformat() if student.subscription_end else "",
            "is_free": student.is_free,
        }
        data = self._student_dialog("Edit Student", initial, editing=True)
        if data is None:
            return
        data.pop("id", None)
        res = self._run(self.controller.edit, student.id, data)
        self._notify(res)
        self._render()

    def _delete(self) -> None:
        sid = self._selected_id()
        if not sid:
            return
        if not messagebox.askyesno("Delete student", f"Remove {sid} and every payment row for it?"):
            return
        res = self._run(self.controller.delete, sid)
        self._notify(res)
        self._render()

    def _student_dialog(self, title: str, initial: dict[str, Any], editing: bool = False) -> dict[str, Any] | None:
        dlg = ctk.CTkToplevel(self)
        dlg.title(title)
        dlg.geometry("560x620")
        dlg.transient(self)
        dlg.grab_set()
        dlg.grid_columnconfigure(0, weight=1)

        body = ctk.CTkScrollableFrame(dlg)
        body.grid(row=0, column=0, sticky="nsew", padx=14, pady=14)
        dlg.grid_rowconfigure(0, weight=1)
        body.grid_columnconfigure(1, weight=1)

        entries: dict[str, ctk.CTkEntry] = {}
        for r, (key, label) in enumerate(PROFILE_FIELDS):
            ctk.CTkLabel(body, text=label).grid(row=r, column=0, padx=8, pady=8, sticky="w")
            ent = ctk.CTkEntry(body)
            ent.grid(row=r, column=1, padx=8, pady=8, sticky="ew")
            if initial.get(key):
                ent.insert(0, str(initial[key]))
            if editing and key == "id":
                ent.configure(state="disabled")
            entries[key] = ent

        free_var = ctk.BooleanVar(value=bool(initial.get("is_free")))
        ctk.CTkCheckBox(body, text="Free student (no monthly fee)", variable=free_var).grid(
            row=len(PROFILE_FIELDS), column=0, columnspan=2, padx=8, pady=8, sticky="w"
        )
        paid_var = ctk.BooleanVar(value=False)
        if not editing:
            ctk.CTkCheckBox(body, text="Paid for the current month", variable=paid_var).grid(
                row=len(PROFILE_FIELDS) + 1, column=0, columnspan=2, padx=8, pady=8, sticky="w"
            )

        result: dict[str, Any] = {}

        def on_save() -> None:
            for k, ent in entries.items():
                value = ent.get().strip()
                if value or not editing:
                    result[k] = value
            result["is_free"] = free_var.get()
            if free_var.get():
                result.pop("monthly_fee", None)
            if not editing:
                result["current_month_paid"] = paid_var.get()
            dlg.destroy()

        actions = ctk.CTkFrame(dlg, corner_radius=0)
        actions.grid(row=1, column=0, sticky="ew", padx=14, pady=(0, 14))
        actions.grid_columnconfigure((0, 1), weight=1)
        ctk.CTkButton(actions, text="Cancel", command=dlg.destroy).grid(row=0, column=0, padx=6, pady=10, sticky="ew")
        ctk.CTkButton(actions, text="Save", command=on_save).grid(row=0, column=1, padx=6, pady=10, sticky="ew")

        self.wait_window(dlg)
        return result if result else None


def main() -> None:
    configure_logging()
    app = LedgerApp()
    app.mainloop()


if __name__ == "__main__":
    main()

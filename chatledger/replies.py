"""
Reply Composer

Every user-visible message comes from here, in Indonesian ("id") or
English ("en"). Engines return values; this module turns them into chat
text. No engine formats money or picks a language.

Error replies always end with an example the user can send next.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from chatledger.errors import GoalHasFundsError, InsufficientFunds, LedgerError
from chatledger.models.ledger import Budget, Category, Goal, Language, TransactionKind
from chatledger.models.results import (
    AlertTier,
    BoostOutcome,
    BudgetAlert,
    BudgetOverview,
    BudgetRecommendation,
    BudgetStatus,
    CashFlowProjection,
    DeleteGoalOutcome,
    FinancialScore,
    GoalProgress,
    MaterializedTransaction,
    MonthlySummary,
    PlanOutcome,
    ReceiptOutcome,
    ReturnOutcome,
    TransferOutcome,
)


CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "IDR": "Rp",
    "CNY": "¥",
    "KRW": "₩",
    "SGD": "S$",
    "MYR": "RM",
    "THB": "฿",
    "VND": "₫",
}

# Shown without minor units
ZERO_DECIMAL_CURRENCIES = {"IDR", "JPY", "KRW", "VND"}


def format_money(amount: Decimal, currency: str) -> str:
    """
    "Rp 25.000" for IDR, "$1,250.50" for USD, "¥3,000" for JPY.

    Unknown currencies fall back to their ISO code as the symbol.
    """
    currency = (currency or "").upper()
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    sign = "-" if amount < 0 else ""
    amount = abs(Decimal(amount))

    if currency in ZERO_DECIMAL_CURRENCIES:
        digits = f"{amount.quantize(Decimal('1'), ROUND_HALF_UP):,}"
        if currency == "IDR":
            return f"{sign}Rp {digits.replace(',', '.')}"
        return f"{sign}{symbol}{digits}"

    return f"{sign}{symbol}{amount:,.2f}"


MESSAGES: dict[Language, dict[str, str]] = {
    Language.INDONESIAN: {
        # Identity
        "not_linked": "❌ Akun belum terhubung. Kirim kode aktivasi dari aplikasi, contoh: AKTIVASI: ABC123",
        "activation_invalid": "❌ Kode aktivasi tidak valid atau sudah kadaluarsa.",
        "activation_taken": "❌ Nomor ini sudah terhubung ke akun lain.",
        "activation_success": "✅ Akun Anda berhasil terhubung! Ketik \"bantuan\" untuk melihat daftar perintah.",
        # Transactions
        "income": "Pemasukan",
        "expense": "Pengeluaran",
        "transaction_saved": (
            "✅ Transaksi berhasil dicatat!\n\n"
            "{kind_icon} {kind_label}: {amount}\n"
            "{category_icon} Kategori: {category}\n"
            "📝 Deskripsi: {description}\n"
            "📅 Tanggal: {date}"
        ),
        "category_auto_created": "🆕 Kategori baru \"{name}\" telah dibuat!",
        "receipt_saved": "🧾 {count} transaksi dari struk dicatat (total {total}).",
        "receipt_item": "• {description}: {amount} ({category})",
        "receipt_skipped": "⚠️ {count} item dilewati karena kurang jelas.",
        "receipt_failed": "⚠️ {count} item belum tersimpan karena gangguan penyimpanan. Kirim ulang item tersebut saja.",
        # Budgets
        "alert_info": "💡 Anggaran {category} sudah terpakai {percent} ({spent} dari {amount}).",
        "alert_danger": "⚠️ Hati-hati! Anggaran {category} sudah terpakai {percent} ({spent} dari {amount}).",
        "alert_exceeded": "🚨 Anggaran {category} terlampaui! Terpakai {percent} ({spent} dari {amount}).",
        "recommendation": (
            "💡 Belum ada anggaran untuk {category}. Rata-rata pengeluaran bulanan {average}, "
            "rekomendasi anggaran {recommended} (skor {score}, risiko {risk}).\n"
            "Contoh: \"buat budget {category} {recommended_plain}\""
        ),
        "budget_created": "✅ Anggaran {category} dibuat: {amount} per {period}.",
        "budget_updated": "✅ Anggaran {category} diperbarui: {amount} per {period}.",
        "budget_deleted": "🗑️ Anggaran {category} dihapus.",
        "budget_status": "📊 {category}: {spent} dari {amount} ({percent}), sisa {remaining}.",
        "budget_overview_header": "📊 *ANGGARAN*",
        "budget_overview_total": "Total: {spent} dari {amount}",
        "budget_list_line": "• {category}: {amount} per {period}",
        "budget_empty": "Belum ada anggaran. Contoh: \"buat budget makan 1000000\"",
        "weekly": "minggu",
        "monthly": "bulan",
        # Categories
        "category_created": "✅ Kategori {icon} {name} dibuat.",
        "category_updated": "✅ Kategori diperbarui: {icon} {name}.",
        "category_deleted": "🗑️ Kategori {name} dihapus.",
        "category_list_header": "📂 *KATEGORI*",
        "category_list_line": "{icon} {name} ({kind})",
        # Goals
        "goal_created": "🎯 Target \"{name}\" dibuat: {target}.",
        "goal_boosted": "🐷 {applied} ditabung ke \"{name}\" ({current} dari {target}, {percent}).",
        "goal_boost_remainder": "ℹ️ {remainder} tidak dipindahkan karena target sudah hampir penuh.",
        "goal_completed": "🎉 Selamat! Target \"{name}\" tercapai dan diarsipkan.",
        "goal_transferred": "🔁 {moved} dipindahkan dari \"{source}\" ke \"{destination}\".",
        "goal_transfer_kept": "ℹ️ {kept} tetap di \"{source}\" karena \"{destination}\" sudah penuh.",
        "goal_returned": "↩️ {returned} dikembalikan dari \"{name}\" ke saldo utama.",
        "goal_deleted": "🗑️ Target \"{name}\" dihapus.",
        "goal_deleted_returned": "🗑️ Target \"{name}\" dihapus, {returned} dikembalikan ke saldo utama.",
        "goal_list_header": "🎯 *TARGET TABUNGAN*",
        "goal_line": "• {name}: {current} / {target} ({percent}){archived}",
        "goal_archived": " - tercapai",
        "goal_list_empty": "Belum ada target tabungan. Contoh: \"buat tabungan Liburan 5000000\"",
        "plan_set": "📅 Rencana menabung {amount} per {frequency} untuk \"{name}\". Setoran berikutnya {next_date}.",
        "plan_replaced": "ℹ️ Rencana sebelumnya dinonaktifkan.",
        "weekly_plan": "minggu",
        "biweekly_plan": "dua minggu",
        "monthly_plan": "bulan",
        # Summary
        "summary": (
            "💰 *RINGKASAN KEUANGAN*\n\n"
            "💳 Saldo Total: {balance}\n\n"
            "📊 *Bulan Ini:*\n"
            "💚 Pemasukan: {income}\n"
            "💸 Pengeluaran: {expense}\n"
            "📈 Selisih: {net}\n"
            "📝 Total Transaksi: {count}"
        ),
        "recent_header": "🕒 *Transaksi Terakhir:*",
        "recent_line": "{icon} {description}: {amount} ({date})",
        "status": (
            "🩺 *STATUS KEUANGAN*\n\n"
            "⭐ Skor: {score}/100\n"
            "📅 Arus kas bulan ini: {monthly}\n"
            "📆 Arus kas mingguan: {weekly}\n"
            "🔮 Proyeksi saldo 3 bulan: {projected}\n"
            "⏳ {burn}"
        ),
        "burn_indefinite": "Saldo aman, arus kas tidak negatif",
        "burn_days": "Saldo habis dalam sekitar {days} hari",
        # Help
        "help": (
            "🤖 *Asisten Keuangan*\n\n"
            "📝 Ketik transaksi: \"beli kopi 25000\", \"terima gaji 5 juta\"\n"
            "🎤 Kirim voice note tentang transaksi\n"
            "📸 Foto struk untuk dicatat otomatis\n\n"
            "📊 Anggaran: \"buat budget makan 1000000\", \"cek budget\"\n"
            "📂 Kategori: \"buat kategori Kopi\", \"daftar kategori\"\n"
            "🎯 Tabungan: \"buat tabungan Liburan 5000000\", \"nabung 100000 ke Liburan\"\n\n"
            "💰 Perintah khusus:\n"
            "• saldo - ringkasan bulan ini\n"
            "• status - skor dan arus kas\n"
            "• bantuan - menu ini"
        ),
        # Errors
        "low_confidence": "🤔 Maaf, pesan Anda kurang jelas. Coba tulis lebih lengkap, contoh: \"beli kopi 25000\"",
        "category_unresolved": "❓ Kategori tidak ditemukan. Buat dulu, contoh: \"buat kategori Kopi\"",
        "insufficient_funds": "❌ Dana tidak cukup. Tersedia {available}. Contoh: \"daftar tabungan\"",
        "goal_not_found": "❓ Target tidak ditemukan. Contoh: \"daftar tabungan\"",
        "category_not_found": "❓ Kategori tidak ditemukan. Contoh: \"daftar kategori\"",
        "budget_not_found": "❓ Anggaran tidak ditemukan. Contoh: \"buat budget makan 1000000\"",
        "service_unavailable": "⏳ Layanan sedang sibuk. Silakan coba lagi sebentar lagi.",
        "validation_error": "❌ {detail}. Contoh: \"bantuan\"",
        "goal_has_funds": (
            "❌ Target \"{name}\" masih berisi {amount}. Pindahkan dulu, contoh: "
            "\"pindahkan tabungan {amount_plain} dari {name} ke {candidate}\", atau \"kembalikan dana {name}\"."
        ),
        "did_you_mean": "Mungkin maksud Anda: {names}",
        "storage_error": "⚠️ Gagal menyimpan data. Silakan coba lagi sebentar lagi.",
        "unexpected_error": "❌ Terjadi kesalahan saat memproses pesan. Silakan coba lagi.",
        "unsupported_attachment": "❌ Format file tidak didukung. Kirim foto struk (JPG/PNG) atau voice note.",
        "attachment_too_large": "❌ File terlalu besar. Maksimal {max_mb} MB.",
        "empty_message": "🤔 Pesan kosong. Ketik \"bantuan\" untuk melihat contoh.",
    },
    Language.ENGLISH: {
        # Identity
        "not_linked": "❌ This account is not linked yet. Send the activation code from the app, for example: AKTIVASI: ABC123",
        "activation_invalid": "❌ The activation code is invalid or has expired.",
        "activation_taken": "❌ This number is already linked to another account.",
        "activation_success": "✅ Your account is now linked! Send \"help\" to see what I can do.",
        # Transactions
        "income": "Income",
        "expense": "Expense",
        "transaction_saved": (
            "✅ Transaction recorded!\n\n"
            "{kind_icon} {kind_label}: {amount}\n"
            "{category_icon} Category: {category}\n"
            "📝 Description: {description}\n"
            "📅 Date: {date}"
        ),
        "category_auto_created": "🆕 New category \"{name}\" was created!",
        "receipt_saved": "🧾 Recorded {count} transaction(s) from the receipt (total {total}).",
        "receipt_item": "• {description}: {amount} ({category})",
        "receipt_skipped": "⚠️ Skipped {count} unclear item(s).",
        "receipt_failed": "⚠️ {count} item(s) were not saved due to a storage problem. Resend only those items.",
        # Budgets
        "alert_info": "💡 You have used {percent} of your {category} budget ({spent} of {amount}).",
        "alert_danger": "⚠️ Careful! You have used {percent} of your {category} budget ({spent} of {amount}).",
        "alert_exceeded": "🚨 {category} budget exceeded! Used {percent} ({spent} of {amount}).",
        "recommendation": (
            "💡 No budget for {category} yet. You spend {average} a month on average, "
            "so a budget of {recommended} is suggested (score {score}, {risk} risk).\n"
            "Example: \"set {category} budget {recommended_plain}\""
        ),
        "budget_created": "✅ {category} budget created: {amount} per {period}.",
        "budget_updated": "✅ {category} budget updated: {amount} per {period}.",
        "budget_deleted": "🗑️ {category} budget deleted.",
        "budget_status": "📊 {category}: {spent} of {amount} ({percent}), {remaining} left.",
        "budget_overview_header": "📊 *BUDGETS*",
        "budget_overview_total": "Total: {spent} of {amount}",
        "budget_list_line": "• {category}: {amount} per {period}",
        "budget_empty": "No budgets yet. Example: \"set food budget 300\"",
        "weekly": "week",
        "monthly": "month",
        # Categories
        "category_created": "✅ Category {icon} {name} created.",
        "category_updated": "✅ Category updated: {icon} {name}.",
        "category_deleted": "🗑️ Category {name} deleted.",
        "category_list_header": "📂 *CATEGORIES*",
        "category_list_line": "{icon} {name} ({kind})",
        # Goals
        "goal_created": "🎯 Goal \"{name}\" created: {target}.",
        "goal_boosted": "🐷 Saved {applied} to \"{name}\" ({current} of {target}, {percent}).",
        "goal_boost_remainder": "ℹ️ {remainder} was not moved because the goal is nearly full.",
        "goal_completed": "🎉 Congratulations! Goal \"{name}\" is complete and archived.",
        "goal_transferred": "🔁 Moved {moved} from \"{source}\" to \"{destination}\".",
        "goal_transfer_kept": "ℹ️ {kept} stayed in \"{source}\" because \"{destination}\" is full.",
        "goal_returned": "↩️ Returned {returned} from \"{name}\" to your main balance.",
        "goal_deleted": "🗑️ Goal \"{name}\" deleted.",
        "goal_deleted_returned": "🗑️ Goal \"{name}\" deleted, {returned} returned to your main balance.",
        "goal_list_header": "🎯 *SAVINGS GOALS*",
        "goal_line": "• {name}: {current} / {target} ({percent}){archived}",
        "goal_archived": " - complete",
        "goal_list_empty": "No savings goals yet. Example: \"create goal Vacation 2000\"",
        "plan_set": "📅 Plan set: save {amount} every {frequency} for \"{name}\". Next contribution {next_date}.",
        "plan_replaced": "ℹ️ The previous plan was deactivated.",
        "weekly_plan": "week",
        "biweekly_plan": "two weeks",
        "monthly_plan": "month",
        # Summary
        "summary": (
            "💰 *FINANCIAL SUMMARY*\n\n"
            "💳 Total Balance: {balance}\n\n"
            "📊 *This Month:*\n"
            "💚 Income: {income}\n"
            "💸 Expenses: {expense}\n"
            "📈 Net: {net}\n"
            "📝 Transactions: {count}"
        ),
        "recent_header": "🕒 *Recent Transactions:*",
        "recent_line": "{icon} {description}: {amount} ({date})",
        "status": (
            "🩺 *FINANCIAL STATUS*\n\n"
            "⭐ Score: {score}/100\n"
            "📅 Cash flow this month: {monthly}\n"
            "📆 Weekly cash flow: {weekly}\n"
            "🔮 Projected balance in 3 months: {projected}\n"
            "⏳ {burn}"
        ),
        "burn_indefinite": "Balance is safe, cash flow is not negative",
        "burn_days": "Balance runs out in about {days} days",
        # Help
        "help": (
            "🤖 *Finance Assistant*\n\n"
            "📝 Type a transaction: \"coffee 4.50\", \"got salary 3000\"\n"
            "🎤 Send a voice note about a transaction\n"
            "📸 Send a receipt photo to record it\n\n"
            "📊 Budgets: \"set food budget 300\", \"check budget\"\n"
            "📂 Categories: \"create category Coffee\", \"list categories\"\n"
            "🎯 Savings: \"create goal Vacation 2000\", \"save to Vacation 100\"\n\n"
            "💰 Commands:\n"
            "• balance - this month's summary\n"
            "• status - score and cash flow\n"
            "• help - this menu"
        ),
        # Errors
        "low_confidence": "🤔 Sorry, I couldn't understand that. Try being more specific, for example: \"coffee 4.50\"",
        "category_unresolved": "❓ No matching category. Create one first, for example: \"create category Coffee\"",
        "insufficient_funds": "❌ Not enough funds. Available: {available}. Example: \"list goals\"",
        "goal_not_found": "❓ Goal not found. Example: \"list goals\"",
        "category_not_found": "❓ Category not found. Example: \"list categories\"",
        "budget_not_found": "❓ Budget not found. Example: \"set food budget 300\"",
        "service_unavailable": "⏳ The assistant is busy right now. Please try again in a moment.",
        "validation_error": "❌ {detail}. Example: \"help\"",
        "goal_has_funds": (
            "❌ Goal \"{name}\" still holds {amount}. Move it first, for example: "
            "\"transfer {amount_plain} from goal {name} to {candidate}\", or \"return funds from {name}\"."
        ),
        "did_you_mean": "Did you mean: {names}",
        "storage_error": "⚠️ Could not save your data. Please try again in a moment.",
        "unexpected_error": "❌ Something went wrong while processing your message. Please try again.",
        "unsupported_attachment": "❌ Unsupported file. Send a receipt photo (JPG/PNG) or a voice note.",
        "attachment_too_large": "❌ File too large. The limit is {max_mb} MB.",
        "empty_message": "🤔 Empty message. Send \"help\" for examples.",
    },
}


def _plain(amount: Decimal) -> str:
    """Amount as a user would type it back ("25000", "4.5")."""
    return format(Decimal(amount).normalize(), "f")


def _percent(value: float) -> str:
    return f"{value:.0f}%"


class ReplyComposer:
    """
    Localized reply text for one user.

    Usage:
        composer = ReplyComposer(Language.INDONESIAN, "IDR")
        composer.transaction_saved(result)
    """

    def __init__(self, language: Union[Language, str] = Language.ENGLISH, currency: str = "USD"):
        try:
            self.language = Language(language)
        except ValueError:
            self.language = Language.ENGLISH
        self.currency = currency

    def text(self, key: str, **kwargs) -> str:
        return MESSAGES[self.language][key].format(**kwargs)

    def money(self, amount: Decimal) -> str:
        return format_money(amount, self.currency)

    @staticmethod
    def _date(value) -> str:
        return value.strftime("%d/%m/%Y")

    # -------------------------------------------------------------------------
    # Identity and built-ins
    # -------------------------------------------------------------------------

    def not_linked(self) -> str:
        return self.text("not_linked")

    def activation_invalid(self) -> str:
        return self.text("activation_invalid")

    def activation_taken(self) -> str:
        return self.text("activation_taken")

    def activation_success(self) -> str:
        return self.text("activation_success")

    def help(self) -> str:
        return self.text("help")

    def summary(self, summary: MonthlySummary) -> str:
        lines = [self.text(
            "summary",
            balance=self.money(summary.balance),
            income=self.money(summary.income),
            expense=self.money(summary.expense),
            net=self.money(summary.net),
            count=summary.transaction_count,
        )]
        if summary.recent:
            lines.append("")
            lines.append(self.text("recent_header"))
            for txn in summary.recent:
                lines.append(self.text(
                    "recent_line",
                    icon="💰" if txn.kind == TransactionKind.INCOME else "💸",
                    description=txn.description,
                    amount=self.money(txn.amount),
                    date=self._date(txn.occurred_at),
                ))
        return "\n".join(lines)

    def status(self, score: FinancialScore, projection: CashFlowProjection) -> str:
        if projection.burn_rate_days is None:
            burn = self.text("burn_indefinite")
        else:
            burn = self.text("burn_days", days=projection.burn_rate_days)
        return self.text(
            "status",
            score=score.score,
            monthly=self.money(projection.monthly_cash_flow),
            weekly=self.money(projection.weekly_cash_flow),
            projected=self.money(projection.projected_balance),
            burn=burn,
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def transaction_saved(self, result: MaterializedTransaction) -> str:
        txn = result.transaction
        lines = [self.text(
            "transaction_saved",
            kind_icon="💰" if txn.kind == TransactionKind.INCOME else "💸",
            kind_label=self.text(txn.kind.value),
            amount=self.money(txn.amount),
            category_icon=result.category.icon,
            category=result.category.name,
            description=txn.description,
            date=self._date(txn.occurred_at),
        )]
        lines.extend(self._transaction_notes(result))
        return "\n".join(lines)

    def receipt_saved(self, outcome: ReceiptOutcome) -> str:
        lines = [self.text(
            "receipt_saved",
            count=len(outcome.materialized),
            total=self.money(outcome.total),
        )]
        for item in outcome.materialized:
            lines.append(self.text(
                "receipt_item",
                description=item.transaction.description,
                amount=self.money(item.transaction.amount),
                category=item.category.name,
            ))
        if outcome.skipped:
            lines.append(self.text("receipt_skipped", count=outcome.skipped))
        if outcome.failed:
            lines.append(self.text("receipt_failed", count=outcome.failed))
        for item in outcome.materialized:
            lines.extend(self._transaction_notes(item))
        return "\n".join(lines)

    def _transaction_notes(self, result: MaterializedTransaction) -> list[str]:
        notes = []
        if result.category_created:
            notes.append("")
            notes.append(self.text("category_auto_created", name=result.category.name))
        if result.budget_alert is not None:
            notes.append("")
            notes.append(self.budget_alert(result.budget_alert))
        elif result.recommendation is not None:
            notes.append("")
            notes.append(self.recommendation(result.recommendation))
        return notes

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def budget_alert(self, alert: BudgetAlert) -> str:
        key = {
            AlertTier.INFO: "alert_info",
            AlertTier.DANGER: "alert_danger",
            AlertTier.EXCEEDED: "alert_exceeded",
        }[alert.tier]
        status = alert.status
        return self.text(
            key,
            category=status.category_name,
            percent=_percent(status.percentage),
            spent=self.money(status.spent),
            amount=self.money(status.amount),
        )

    def recommendation(self, recommendation: BudgetRecommendation) -> str:
        return self.text(
            "recommendation",
            category=recommendation.category_name,
            average=self.money(recommendation.monthly_average),
            recommended=self.money(recommendation.recommended_amount),
            recommended_plain=_plain(recommendation.recommended_amount),
            score=recommendation.score,
            risk=recommendation.risk_level.value,
        )

    def budget_saved(self, budget: Budget, category: Category, created: bool) -> str:
        return self.text(
            "budget_created" if created else "budget_updated",
            category=category.name,
            amount=self.money(budget.amount),
            period=self.text(budget.period.value),
        )

    def budget_deleted(self, category: Category) -> str:
        return self.text("budget_deleted", category=category.name)

    def budget_status(self, status: BudgetStatus) -> str:
        return self.text(
            "budget_status",
            category=status.category_name,
            spent=self.money(status.spent),
            amount=self.money(status.amount),
            percent=_percent(status.percentage),
            remaining=self.money(status.remaining),
        )

    def budget_overview(self, overview: BudgetOverview) -> str:
        if not overview.statuses:
            return self.text("budget_empty")
        lines = [self.text("budget_overview_header")]
        lines.extend(self.budget_status(s) for s in overview.statuses)
        lines.append("")
        lines.append(self.text(
            "budget_overview_total",
            spent=self.money(overview.total_spent),
            amount=self.money(overview.total_budget),
        ))
        return "\n".join(lines)

    def budget_list(self, overview: BudgetOverview) -> str:
        if not overview.statuses:
            return self.text("budget_empty")
        lines = [self.text("budget_overview_header")]
        lines.extend(
            self.text(
                "budget_list_line",
                category=s.category_name,
                amount=self.money(s.amount),
                period=self.text(s.period.value),
            )
            for s in overview.statuses
        )
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def category_created(self, category: Category) -> str:
        return self.text("category_created", icon=category.icon, name=category.name)

    def category_updated(self, category: Category) -> str:
        return self.text("category_updated", icon=category.icon, name=category.name)

    def category_deleted(self, category: Category) -> str:
        return self.text("category_deleted", name=category.name)

    def category_list(self, categories: list[Category]) -> str:
        lines = [self.text("category_list_header")]
        for kind in (TransactionKind.EXPENSE, TransactionKind.INCOME):
            lines.extend(
                self.text("category_list_line", icon=c.icon, name=c.name, kind=self.text(kind.value))
                for c in sorted(categories, key=lambda c: c.normalized_name)
                if c.kind == kind
            )
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    def goal_created(self, goal: Goal) -> str:
        return self.text("goal_created", name=goal.name, target=self.money(goal.target_amount))

    def goal_boosted(self, outcome: BoostOutcome) -> str:
        goal = outcome.goal
        lines = [self.text(
            "goal_boosted",
            applied=self.money(outcome.applied),
            name=goal.name,
            current=self.money(goal.current_amount),
            target=self.money(goal.target_amount),
            percent=_percent(goal.progress_percent),
        )]
        if outcome.remainder > 0:
            lines.append(self.text("goal_boost_remainder", remainder=self.money(outcome.remainder)))
        if outcome.completed:
            lines.append(self.text("goal_completed", name=goal.name))
        return "\n".join(lines)

    def goal_transferred(self, outcome: TransferOutcome) -> str:
        lines = [self.text(
            "goal_transferred",
            moved=self.money(outcome.moved),
            source=outcome.source.name,
            destination=outcome.destination.name,
        )]
        if outcome.kept_in_source > 0:
            lines.append(self.text(
                "goal_transfer_kept",
                kept=self.money(outcome.kept_in_source),
                source=outcome.source.name,
                destination=outcome.destination.name,
            ))
        if outcome.destination_completed:
            lines.append(self.text("goal_completed", name=outcome.destination.name))
        return "\n".join(lines)

    def goal_returned(self, outcome: ReturnOutcome) -> str:
        return self.text("goal_returned", returned=self.money(outcome.returned), name=outcome.goal.name)

    def goal_deleted(self, outcome: DeleteGoalOutcome) -> str:
        if outcome.returned > 0:
            return self.text(
                "goal_deleted_returned",
                name=outcome.goal_name,
                returned=self.money(outcome.returned),
            )
        return self.text("goal_deleted", name=outcome.goal_name)

    def goal_line(self, progress: GoalProgress) -> str:
        return self.text(
            "goal_line",
            name=progress.name,
            current=self.money(progress.current_amount),
            target=self.money(progress.target_amount),
            percent=_percent(progress.progress_percent),
            archived="" if progress.is_active else self.text("goal_archived"),
        )

    def goal_list(self, goals: list[GoalProgress]) -> str:
        if not goals:
            return self.text("goal_list_empty")
        return "\n".join([self.text("goal_list_header"), *(self.goal_line(g) for g in goals)])

    def plan_set(self, outcome: PlanOutcome) -> str:
        lines = [self.text(
            "plan_set",
            amount=self.money(outcome.plan.amount),
            frequency=self.text(f"{outcome.plan.frequency.value}_plan"),
            name=outcome.goal.name,
            next_date=self._date(outcome.plan.next_contribution_at),
        )]
        if outcome.replaced_plan:
            lines.append(self.text("plan_replaced"))
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Failures
    # -------------------------------------------------------------------------

    def error(self, error: LedgerError) -> str:
        """Localized reply for a classified failure, with suggestions when known."""
        if isinstance(error, GoalHasFundsError):
            message = self.text(
                "goal_has_funds",
                name=error.goal_name,
                amount=self.money(error.current_amount),
                amount_plain=_plain(error.current_amount),
                candidate=error.candidates[0] if error.candidates else "...",
            )
            return message

        if isinstance(error, InsufficientFunds):
            message = self.text("insufficient_funds", available=self.money(error.available))
        elif error.kind == "validation_error":
            message = self.text("validation_error", detail=error.message.rstrip("."))
        elif error.kind in MESSAGES[self.language]:
            message = self.text(error.kind)
        else:
            message = self.text("unexpected_error")

        if error.suggestions and not isinstance(error, InsufficientFunds):
            message += "\n" + self.text("did_you_mean", names=", ".join(error.suggestions))
        return message

    def storage_failure(self) -> str:
        return self.text("storage_error")

    def unexpected_failure(self) -> str:
        return self.text("unexpected_error")

    def unsupported_attachment(self) -> str:
        return self.text("unsupported_attachment")

    def attachment_too_large(self, max_mb: int) -> str:
        return self.text("attachment_too_large", max_mb=max_mb)

    def empty_message(self) -> str:
        return self.text("empty_message")

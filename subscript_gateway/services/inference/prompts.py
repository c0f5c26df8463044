"""
Finance Advisor Prompt

Turns a FinanceSnapshot into the advisor prompt sent to the chat model.
The figures arrive precomputed; nothing here does budget arithmetic.
"""

from subscript_gateway.models.gateway import FinanceSnapshot


CYCLE_LABELS = {
    "weekly": "每周",
    "monthly": "每月",
    "yearly": "每年",
}


def build_finance_advice_prompt(snapshot: FinanceSnapshot) -> str:
    """Build the financial-health prompt for the streaming chat model."""
    categories = ", ".join(
        f"{label}: {value:.2f}"
        for label, value in snapshot.category_totals.items()
    ) or "None"

    subscription_lines = "\n".join(
        f"- {sub.name} ({sub.category_label}): {sub.price:g} {sub.currency}/"
        f"{CYCLE_LABELS.get(sub.cycle, sub.cycle)}"
        for sub in snapshot.subscriptions
    ) or "- (no subscriptions)"

    return f"""Assuming you are a professional financial advisor. Please analyze my subscriptions and budget data to provide money-saving advice and financial health assessment.

**My Financial Data:**
- **Total Subscriptions:** {len(snapshot.subscriptions)}
- **Monthly Fixed Spending:** {snapshot.monthly_total:.2f} CNY
- **Yearly Fixed Spending:** {snapshot.yearly_total:.2f} CNY
- **Spending by Category:** {categories}
- **Income/Budget Info:**
  - Base Salary: {snapshot.base_salary:g} CNY
  - Commission: {snapshot.commission:g} CNY
  - Target Monthly Budget for Subs: {snapshot.monthly_budget:g} CNY

**Subscriptions List:**
{subscription_lines}

**Please Provide:**
1. A brief assessment of my financial health regarding recurring expenses.
2. Identify any potential areas where I am overspending.
3. 3-5 concrete, actionable tips to optimize my subscription portfolio or save money.
4. Use a professional yet encouraging tone.
5. Please answer in Simplified Chinese (简体中文).
"""

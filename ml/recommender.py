
import pandas as pd
from sklearn.linear_model import LinearRegression
from sqlalchemy import select

from models import Expense, Income, Profile

# amounts are floats in here; nothing computed below is written back to the ledger


def _query_user_df(session, user_id):
    # Build a DataFrame of the user's ledger across all profiles
    data = []
    for model in (Income, Expense):
        rows = session.scalars(
            select(model).join(Profile, model.profile_id == Profile.id).where(Profile.user_id == user_id)
        ).all()
        data.extend({
            'date': r.date,
            'amount': float(r.amount),
            'kind': model.kind,
            'type': r.type,
            'profile_id': r.profile_id,
        } for r in rows)
    if not data:
        return pd.DataFrame(columns=['date', 'amount', 'kind', 'type', 'profile_id'])
    df = pd.DataFrame(data)
    df['date'] = pd.to_datetime(df['date'])
    return df


def _monthly_expenses(df):
    expenses = df[df['kind'] == 'expense'].copy()
    if expenses.empty:
        return pd.Series(dtype=float)
    expenses['ym'] = expenses['date'].dt.to_period('M').astype(str)
    return expenses.groupby('ym')['amount'].sum()


def predict_next_month_expense(session, user_id):
    df = _query_user_df(session, user_id)
    if df.empty:
        return 0.0
    monthly = _monthly_expenses(df)
    if monthly.empty:
        return 0.0
    if len(monthly) < 2:
        # Not enough data to fit
        return round(float(monthly.iloc[-1]), 2)
    m = monthly.reset_index()
    # Turn months into an integer index
    m['idx'] = range(1, len(m) + 1)
    X = m[['idx']].values
    y = m['amount'].values
    model = LinearRegression().fit(X, y)
    next_idx = m['idx'].max() + 1
    pred = float(model.predict([[next_idx]])[0])
    return round(max(pred, 0.0), 2)


def generate_recommendations(session, user_id):
    df = _query_user_df(session, user_id)
    recs = []
    if df.empty:
        recs.append('Add at least 2 months of income and expenses to get personalized savings insights.')
        return recs
    total_income = df[df['kind'] == 'income']['amount'].sum()
    total_expense = df[df['kind'] == 'expense']['amount'].sum()
    if total_income > 0:
        savings_rate = max((total_income - total_expense) / total_income, 0)
        recs.append(f'Your overall savings rate is {savings_rate*100:.1f}%. Aim for 20%+ as a baseline.')
    else:
        recs.append('Add income entries to compute your savings rate.')
    # Top 3 expense types
    by_type = df[df['kind'] == 'expense'].groupby('type')['amount'].sum().sort_values(ascending=False)
    for t, v in by_type.head(3).items():
        recs.append(f'High spend on "{t}": {v:.2f}. Consider setting a monthly cap or finding cheaper alternatives.')
    monthly = _monthly_expenses(df)
    if len(monthly) >= 2:
        last = monthly.iloc[-1]
        prev_avg = monthly.iloc[:-1].mean()
        if last > 1.2 * prev_avg:
            recs.append("Last month's expenses exceeded your previous average by 20%+. Review discretionary types.")
    pred = predict_next_month_expense(session, user_id)
    if total_income > 0:
        target_save = max(total_income * 0.2, 0)
        recs.append(f'Predicted next month expense: {pred:.2f}. Set a savings target of at least {target_save:.2f}.')
    else:
        recs.append(f'Predicted next month expense: {pred:.2f}. Add income to compute a savings target.')
    return recs

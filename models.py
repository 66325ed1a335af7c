
from decimal import Decimal

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import mapped_column

db = SQLAlchemy()

MONEY = db.Numeric(15, 2, asdecimal=True)
CENTS = Decimal('0.01')


def to_money(value) -> Decimal:
    if value is None:
        return Decimal('0.00')
    return Decimal(str(value)).quantize(CENTS)


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    profiles = db.relationship('Profile', backref='user', lazy=True, cascade="all, delete-orphan")


class Profile(db.Model):
    __tablename__ = 'profile'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20))
    position_or_company = db.Column(db.String(255))
    marital_status = db.Column(db.String(50))
    children = db.Column(db.Integer, nullable=False, default=0)
    # cached balance, rewritten by BalanceService after every ledger mutation
    assets = db.Column(MONEY, nullable=False, default=Decimal('0.00'))
    initial_balance = db.Column(MONEY, nullable=False, default=Decimal('0.00'))
    expenses = db.relationship('Expense', backref='profile', lazy=True, cascade="all, delete-orphan")
    incomes = db.relationship('Income', backref='profile', lazy=True, cascade="all, delete-orphan")


class LedgerEntryMixin:
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(MONEY, nullable=False)  # never negative
    type = db.Column(db.String(50), nullable=False)

    def as_dict(self):
        return {
            'id': self.id,
            'profile_id': self.profile_id,
            'date': self.date.isoformat(),
            'description': self.description,
            'amount': str(to_money(self.amount)),
            'type': self.type,
        }


class Expense(LedgerEntryMixin, db.Model):
    __tablename__ = 'expenses'
    kind = 'expense'
    # active_history keeps the old value so a moved entry resyncs its previous profile
    profile_id = mapped_column(db.Integer, db.ForeignKey('profile.id'), nullable=False, index=True, active_history=True)


class Income(LedgerEntryMixin, db.Model):
    __tablename__ = 'income'
    kind = 'income'
    profile_id = mapped_column(db.Integer, db.ForeignKey('profile.id'), nullable=False, index=True, active_history=True)


# URL segment -> ledger model
LEDGER_MODELS = {
    'expenses': Expense,
    'incomes': Income,
}

from models import db


class Option(db.Model):
    """Install-level flags (e.g. whether legacy sessions were transferred)."""

    __tablename__ = "cart_options"

    name = db.Column(db.String(191), primary_key=True)
    value = db.Column(db.Text, nullable=True)

    @classmethod
    def get_value(cls, name, default=None):
        row = db.session.get(cls, name)
        return row.value if row else default

    @classmethod
    def set_value(cls, name, value):
        row = db.session.get(cls, name)
        if row is None:
            row = cls(name=name)
            db.session.add(row)
        row.value = value
        return row

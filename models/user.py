# --- models/user.py ---
from models import db, BIGINT
from datetime import datetime
from werkzeug.security import check_password_hash, generate_password_hash


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(BIGINT, primary_key=True)
    username = db.Column(db.String(60), unique=True, nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    display_name = db.Column(db.String(250), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="customer")   # customer, shop_manager, administrator
    password_hash = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "user_id": str(self.id),
            "first_name": self.first_name or "",
            "last_name": self.last_name or "",
            "display_name": self.display_name or self.username,
            "role": self.role.replace("_", " ").title(),
            "email": self.email or "",
        }

    def __repr__(self):
        return f"<User id={self.id} role={self.role}>"

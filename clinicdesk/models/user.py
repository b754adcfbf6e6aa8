from clinicdesk.extensions import db, bcrypt
from .base import TimestampMixin


class User(db.Model, TimestampMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    profile_image = db.Column(db.Text, nullable=True)

    # Email verification
    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    verification_token = db.Column(db.String(64), nullable=True, index=True)
    verification_expires = db.Column(db.DateTime, nullable=True)

    # Last login tracking
    last_login = db.Column(db.DateTime, nullable=True)

    # Authorization lives on the clinic/role association, not here
    clinic_roles = db.relationship(
        'ClinicUserRole',
        back_populates='user',
        cascade='all, delete-orphan',
        passive_deletes=True,
    )

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'fullName': self.full_name,
            'emailVerified': self.email_verified,
            'profileImage': self.profile_image,
            'lastLogin': self.last_login.isoformat() if self.last_login else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.email}>"

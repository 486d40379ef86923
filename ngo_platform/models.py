# ==============================================================================
# models.py - ORM models
# ==============================================================================

from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, Numeric,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; DateTime columns store UTC without an offset"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==============================================================================
# Identity & tenancy
# ==============================================================================

class Organization(Base):
    __tablename__ = 'organizations'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    subscription_plan = Column(String, default="free")      # 'free', 'basic', 'premium'
    subscription_status = Column(String, default="active")  # 'active', 'suspended', 'cancelled'
    created_at = Column(DateTime, default=utcnow)

    roles = relationship("UserRole", back_populates="organization")
    courses = relationship("Course", back_populates="organization")


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    is_global_admin = Column(Boolean, default=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    roles = relationship("UserRole", back_populates="user", foreign_keys="UserRole.user_id")


class UserRole(Base):
    __tablename__ = 'user_roles'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    role = Column(String, nullable=False)  # 'admin', 'manager', 'volunteer', 'beneficiary'
    granted_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    granted_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)

    user = relationship("User", back_populates="roles", foreign_keys=[user_id])
    organization = relationship("Organization", back_populates="roles")


# ==============================================================================
# Domain records
# ==============================================================================

class Project(Base):
    __tablename__ = 'projects'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    budget = Column(Numeric(12, 2), nullable=True)
    spent_amount = Column(Numeric(12, 2), default=0)
    status = Column(String, nullable=False, default="planning")  # 'planning', 'active', 'paused', 'completed', 'cancelled'
    manager_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Donor(Base):
    __tablename__ = 'donors'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    type = Column(String, nullable=False)  # 'individual', 'corporate'
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    document = Column(String, nullable=True)
    communication_consent = Column(Boolean, default=False)
    total_donated = Column(Numeric(12, 2), default=0)
    status = Column(String, default="active")  # 'active', 'inactive', 'opted_out'
    created_at = Column(DateTime, default=utcnow)


class Donation(Base):
    __tablename__ = 'donations'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    donor_id = Column(Integer, ForeignKey('donors.id'), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, default="BRL")
    payment_method = Column(String, nullable=True)  # 'pix', 'credit_card', 'bank_transfer', 'cash'
    payment_status = Column(String, nullable=True)  # 'pending', 'completed', 'failed', 'refunded'
    is_recurring = Column(Boolean, default=False)
    donation_date = Column(DateTime, default=utcnow)


class Beneficiary(Base):
    __tablename__ = 'beneficiaries'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    registration_number = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    birth_date = Column(Date, nullable=True)
    document = Column(String, nullable=True)
    needs = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="active")  # 'active', 'inactive', 'completed'
    created_at = Column(DateTime, default=utcnow)


class Volunteer(Base):
    __tablename__ = 'volunteers'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    volunteer_number = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    skills = Column(JSON, nullable=True)
    total_hours = Column(Numeric(8, 2), default=0)
    status = Column(String, default="pending")  # 'pending', 'active', 'inactive', 'suspended'
    created_at = Column(DateTime, default=utcnow)


class Funder(Base):
    __tablename__ = 'funders'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=True)  # 'government', 'foundation', 'corporate', 'international'
    contact_person = Column(String, nullable=True)
    email = Column(String, nullable=True)
    relationship_status = Column(String, nullable=True)  # 'prospect', 'active', 'inactive', 'lost'
    total_funded = Column(Numeric(12, 2), default=0)
    next_report_due = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AccountReceivable(Base):
    __tablename__ = 'accounts_receivable'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    donor_id = Column(Integer, ForeignKey('donors.id'), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=True)
    description = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String, default="pending")  # 'pending', 'overdue', 'received', 'cancelled'
    invoice_number = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AccountPayable(Base):
    __tablename__ = 'accounts_payable'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=True)
    supplier_name = Column(String, nullable=False)
    description = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String, default="pending")  # 'pending', 'approved', 'paid', 'overdue', 'cancelled'
    category = Column(String, nullable=True)  # 'administrative', 'project', 'operational'
    paid_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# ==============================================================================
# Courses
# ==============================================================================

class Course(Base):
    __tablename__ = 'courses'
    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey('organizations.id'), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    course_type = Column(String, nullable=False, default="online")  # 'online', 'in_person', 'hybrid'
    pass_score = Column(Integer, nullable=False, default=70)  # percentage
    certificate_enabled = Column(Boolean, nullable=False, default=True)
    duration_hours = Column(Integer, nullable=True)
    status = Column(String, default="draft")  # 'draft', 'published', 'archived'
    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    organization = relationship("Organization", back_populates="courses")
    modules = relationship(
        "CourseModule", back_populates="course", order_by="CourseModule.order_index"
    )


class CourseModule(Base):
    __tablename__ = 'course_modules'
    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    content = Column(JSON, nullable=True)  # {"blocks": [...]}
    duration = Column(Integer, nullable=True)  # minutes
    is_required = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    course = relationship("Course", back_populates="modules")


class UserCourseProgress(Base):
    __tablename__ = 'user_course_progress'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    status = Column(String, nullable=False, default="in_progress")  # 'in_progress', 'completed'
    progress = Column(Integer, nullable=False, default=0)
    completed_modules = Column(JSON, nullable=False, default=list)  # list of module ids
    started_at = Column(DateTime, default=utcnow)
    last_accessed_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    certificate_generated = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User")
    course = relationship("Course")

    __table_args__ = (UniqueConstraint('user_id', 'course_id', name='uq_progress_user_course'),)


class UserCourseRole(Base):
    __tablename__ = 'user_course_roles'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    role = Column(String, nullable=False, default="student")  # 'student', 'instructor', 'assistant', 'observer'
    is_active = Column(Boolean, nullable=False, default=True)
    assigned_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    assigned_at = Column(DateTime, default=utcnow)
    notes = Column(Text, nullable=True)

    user = relationship("User", foreign_keys=[user_id])
    course = relationship("Course")

    __table_args__ = (UniqueConstraint('user_id', 'course_id', name='uq_course_role_user_course'),)


class UserModuleFormSubmission(Base):
    __tablename__ = 'user_module_form_submissions'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    module_id = Column(Integer, ForeignKey('course_modules.id'), nullable=False, index=True)
    answers = Column(JSON, nullable=False)  # {"responses": {...}, "detailed_results": [...]}
    score = Column(Float, nullable=False, default=0)
    max_score = Column(Float, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, default=utcnow)

    module = relationship("CourseModule")

    __table_args__ = (UniqueConstraint('user_id', 'module_id', name='uq_submission_user_module'),)


class UserGrade(Base):
    __tablename__ = 'user_grades'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    module_id = Column(Integer, ForeignKey('course_modules.id'), nullable=True)
    grade_type = Column(String, nullable=False)  # 'module', 'course', 'final'
    grade_scale = Column(Float, nullable=False)  # 1.0 - 10.0
    passed = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text, nullable=True)
    graded_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    graded_at = Column(DateTime, default=utcnow)

    user = relationship("User", foreign_keys=[user_id])


class Certificate(Base):
    __tablename__ = 'certificates'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    certificate_number = Column(String, unique=True, nullable=False)
    verification_code = Column(String, unique=True, nullable=False, index=True)
    final_score = Column(Float, nullable=True)
    issued_at = Column(DateTime, default=utcnow)

    user = relationship("User")
    course = relationship("Course")

    __table_args__ = (UniqueConstraint('user_id', 'course_id', name='uq_certificate_user_course'),)

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from coursework.db.base_class import Base


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    # students are identified by their stable directory email
    student_email = Column(String(255), nullable=False, index=True)

    document_key = Column(String(255), nullable=False)
    filename = Column(String(255), nullable=True)
    content_type = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False)
    upload_revision = Column(Integer, nullable=False, default=1)

    # Grading fields (nullable until graded)
    graded = Column(Boolean, nullable=False, default=False)
    grade = Column(Float, nullable=True)
    comments = Column(Text, nullable=True)
    feedback_key = Column(String(255), nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)
    grade_revision = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("assignment_id", "student_email", name="uq_submission_assignment_student"),
    )

    assignment = relationship("Assignment", back_populates="submissions")

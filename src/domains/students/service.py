"""Student service: registration and slot-gated activation."""
import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import AppError, ConflictError, NotFoundError, SlotUnavailable
from src.domains.slots.service import SlotService
from src.domains.tokens.models import AssignmentType
from src.domains.tokens.service import TokenService
from src.domains.transitions.models import HistoryReason
from src.domains.transitions.service import PlanTransitionService

from .models import Student, StudentStatus
from .schemas import StudentCreate

logger = structlog.get_logger(__name__)


class StudentService:
    """Manages a trainer's students.

    Activation always goes through the token ledger so that every active
    student holds exactly one slot.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.slots = SlotService(db)
        self.tokens = TokenService(db)
        self.transitions = PlanTransitionService(db)

    async def list_students(
        self,
        trainer_id: uuid.UUID,
        status: StudentStatus | None = None,
    ) -> list[Student]:
        query = select(Student).where(Student.trainer_id == trainer_id).order_by(Student.name)
        if status is not None:
            query = query.where(Student.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_student(self, trainer_id: uuid.UUID, student_id: uuid.UUID) -> Student:
        student = await self.db.get(Student, student_id)
        if student is None or student.trainer_id != trainer_id:
            raise NotFoundError("Aluno não encontrado.")
        return student

    async def count_active(self, trainer_id: uuid.UUID) -> int:
        return await self.slots.count_active_students(trainer_id)

    async def create_student(self, trainer_id: uuid.UUID, data: StudentCreate) -> Student:
        """Register a student.

        An active student is only stored together with its slot. When no
        slot can be bound nothing is written.
        """
        existing = await self.db.execute(select(Student.id).where(Student.email == data.email))
        if existing.first() is not None:
            raise ConflictError("Já existe um aluno com este email.")

        if data.status == StudentStatus.ACTIVE:
            verdict = await self.slots.can_activate(trainer_id, 1)
            if not verdict.allowed:
                raise SlotUnavailable(verdict.message, details=verdict.details.model_dump())

        student = Student(
            trainer_id=trainer_id,
            name=data.name,
            email=data.email,
            phone=data.phone,
            goal=data.goal,
            notes=data.notes,
            status=StudentStatus.INACTIVE,
        )
        self.db.add(student)
        await self.db.flush()

        if data.status == StudentStatus.ACTIVE:
            try:
                await self.tokens.consume_slot(trainer_id, student.id, data.preferred_source, commit=False)
            except AppError:
                await self.db.rollback()
                raise
            student.status = StudentStatus.ACTIVE

        await self.db.commit()
        await self.db.refresh(student)
        logger.info(
            "student_created",
            trainer_id=str(trainer_id),
            student_id=str(student.id),
            status=student.status.value,
        )
        return student

    async def activate(
        self,
        student: Student,
        preferred_source: AssignmentType = AssignmentType.PLAN,
    ) -> Student:
        if student.status == StudentStatus.ACTIVE:
            return student

        await self.tokens.consume_slot(student.trainer_id, student.id, preferred_source, commit=False)
        student.status = StudentStatus.ACTIVE
        await self.db.commit()

        logger.info("student_activated", trainer_id=str(student.trainer_id), student_id=str(student.id))
        return student

    async def deactivate(self, student: Student) -> Student:
        """Deactivate a student by hand.

        The slot is freed and the history entry is marked as not
        reactivatable, so plan changes never bring the student back.
        """
        if student.status == StudentStatus.ACTIVE:
            await self.transitions.archive_student(student, HistoryReason.MANUAL_DEACTIVATION)
            await self.db.commit()
            logger.info("student_deactivated", trainer_id=str(student.trainer_id), student_id=str(student.id))
            return student
        await self.tokens.release_slot(student.id)
        return student

    async def set_status(
        self,
        trainer_id: uuid.UUID,
        student_id: uuid.UUID,
        status: StudentStatus,
        preferred_source: AssignmentType = AssignmentType.PLAN,
    ) -> Student:
        student = await self.get_student(trainer_id, student_id)
        if status == StudentStatus.ACTIVE:
            return await self.activate(student, preferred_source)
        return await self.deactivate(student)

    async def delete_student(self, trainer_id: uuid.UUID, student_id: uuid.UUID) -> None:
        student = await self.get_student(trainer_id, student_id)
        await self.tokens.release_slot(student.id)
        await self.db.delete(student)
        await self.db.commit()
        logger.info("student_deleted", trainer_id=str(trainer_id), student_id=str(student_id))

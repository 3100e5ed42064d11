# services/awards.py
"""
Awards programme: categories, nominations, public voting and the review workflow
"""

import hashlib
import json
import logging
import uuid
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.datastructures import FileStorage

from api.schemas import (
    CategorySchema, NominationSchema, NominationUpdateSchema, StatusUpdateSchema,
    VoteSchema, merge_update, parse_payload
)
from core.database_models import (
    db, AwardCategory, Nomination, User, Vote, normalize_email, parse_uuid, slugify, utcnow
)
from core.exceptions import BadRequestError, ConflictError, DuplicateVoteError, InvalidTransitionError, NotFoundError
from core.pagination import page_args, paginate
from services.cache import cache
from services.notifications import (
    nomination_context, queue_admin_email, queue_certificate_generation, queue_email
)
from services.storage import storage

logger = logging.getLogger(__name__)

CATEGORY_CACHE_KEY = 'awards:categories'
NOMINATION_CACHE_PREFIX = 'awards:nominations'

PUBLIC_STATUSES = ('approved', 'winner', 'finalist')
CERTIFICATE_STATUSES = ('approved', 'winner', 'finalist')

# Forward moves of the review workflow; any status may also go back to pending
STATUS_TRANSITIONS = {
    'pending': ('approved', 'rejected'),
    'approved': ('winner', 'finalist'),
}

SORT_COLUMNS = {
    'votes': Nomination.votes,
    'createdAt': Nomination.created_at,
    'nomineeName': Nomination.nominee_name,
    'displayOrder': Nomination.display_order,
    'status': Nomination.status,
}


def can_transition(current: str, requested: str) -> bool:
    return (
        requested == current
        or requested == 'pending'
        or requested in STATUS_TRANSITIONS.get(current, ())
    )


class AwardsService:

    # Categories

    def _category_counts(self) -> Dict[uuid.UUID, Dict[str, int]]:
        rows = db.session.query(
            Nomination.category_id,
            func.count(Nomination.id),
            func.sum(case((Nomination.status == 'approved', 1), else_=0)),
        ).group_by(Nomination.category_id).all()
        return {
            category_id: {'totalNominations': total, 'approvedNominations': int(approved or 0)}
            for category_id, total, approved in rows
        }

    def list_categories(self) -> list:
        cached = cache.get(CATEGORY_CACHE_KEY)
        if cached is not None:
            return cached

        counts = self._category_counts()
        empty = {'totalNominations': 0, 'approvedNominations': 0}
        categories = db.session.query(AwardCategory).filter_by(is_active=True).order_by(AwardCategory.name).all()
        result = [c.to_dict(counts=counts.get(c.id, empty)) for c in categories]

        cache.set(CATEGORY_CACHE_KEY, result, current_app.config['CATEGORY_CACHE_TTL'])
        return result

    def get_category(self, category_id) -> AwardCategory:
        category = db.session.get(AwardCategory, parse_uuid(category_id, "Category not found"))
        if category is None:
            raise NotFoundError("Category not found")
        return category

    def _ensure_unique_name(self, name: str, exclude_id: uuid.UUID = None):
        query = db.session.query(AwardCategory.id).filter(func.lower(AwardCategory.name) == name.lower())
        if exclude_id is not None:
            query = query.filter(AwardCategory.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Category with this name already exists")

    def create_category(self, payload: Dict[str, Any]) -> AwardCategory:
        data = parse_payload(CategorySchema, payload)
        self._ensure_unique_name(data.name)

        category = AwardCategory(
            name=data.name,
            description=data.description,
            icon=data.icon,
            icon_name=data.icon_name,
            is_active=data.is_active,
        )
        db.session.add(category)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Category with this name already exists")

        cache.invalidate(f"{CATEGORY_CACHE_KEY}*")
        logger.info(f"Award category created: {category.name}")
        return category

    def update_category(self, category_id, payload: Dict[str, Any]) -> AwardCategory:
        category = self.get_category(category_id)
        data = parse_payload(CategorySchema, merge_update(CategorySchema, category.to_dict(), payload))
        self._ensure_unique_name(data.name, exclude_id=category.id)

        category.name = data.name
        category.description = data.description
        category.icon = data.icon
        category.icon_name = data.icon_name
        category.is_active = data.is_active
        db.session.commit()

        cache.invalidate(f"{CATEGORY_CACHE_KEY}*")
        return category

    def delete_category(self, category_id) -> None:
        category = self.get_category(category_id)
        nomination_count = db.session.query(func.count(Nomination.id)).filter(
            Nomination.category_id == category.id
        ).scalar()
        if nomination_count:
            raise BadRequestError(
                f"Cannot delete category. It has {nomination_count} nomination(s). "
                f"Please reassign or delete the nominations first."
            )

        db.session.delete(category)
        db.session.commit()
        cache.invalidate(f"{CATEGORY_CACHE_KEY}*")
        logger.info(f"Award category deleted: {category.name}")

    # Nominations

    def _active_category(self, category_id) -> AwardCategory:
        category = db.session.get(AwardCategory, parse_uuid(category_id, "Award category not found"))
        if category is None:
            raise NotFoundError("Award category not found")
        if not category.is_active:
            raise BadRequestError("This award category is not currently accepting nominations")
        return category

    def _invalidate_listings(self):
        cache.invalidate(f"{NOMINATION_CACHE_PREFIX}*")
        cache.invalidate(f"{CATEGORY_CACHE_KEY}*")

    def submit_nomination(self, payload: Dict[str, Any], photo: Optional[FileStorage]) -> Nomination:
        """
        Create a pending nomination with its nominee photo

        The stored photo is removed again when the nomination cannot be saved.
        """
        data = parse_payload(NominationSchema, payload)
        if photo is None or not photo.filename:
            raise BadRequestError("Nominee photo is required")

        category = self._active_category(data.category)
        photo_url = storage.save_image(photo, 'awards')

        nomination = Nomination(
            nominee_name=data.nominee_name,
            nominee_photo=photo_url,
            nominee_title=data.nominee_title,
            nominee_company=data.nominee_company,
            nominee_country=data.nominee_country,
            category_id=category.id,
            nomination_reason=data.nomination_reason,
            achievements=data.achievements,
            impact_description=data.impact_description,
            nominator_name=data.nominator_name,
            nominator_email=data.nominator_email,
            nominator_phone=data.nominator_phone,
            nominator_organization=data.nominator_organization,
            slug=slugify(data.nominee_name),
        )
        db.session.add(nomination)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            storage.delete(photo_url)
            raise

        logger.info(f"Nomination {nomination.id} submitted for {nomination.nominee_name} in {category.name}")
        self._invalidate_listings()

        context = nomination_context(nomination)
        queue_email('nomination_submitted_nominator', nomination.nominator_email, context, related=nomination)
        queue_admin_email('nomination_submitted_admin', context, related=nomination)
        return nomination

    def _filtered_query(self, args, status: Optional[str]):
        query = db.session.query(Nomination)

        category = args.get('category')
        if category:
            query = query.filter(Nomination.category_id == parse_uuid(category, "Award category not found"))
        if status:
            query = query.filter(Nomination.status == status)

        country = (args.get('country') or '').strip()
        if country:
            query = query.filter(Nomination.nominee_country.ilike(f"%{country}%"))

        search = (args.get('search') or '').strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Nomination.nominee_name.ilike(pattern),
                Nomination.nominee_title.ilike(pattern),
                Nomination.nominee_company.ilike(pattern),
                Nomination.nomination_reason.ilike(pattern),
            ))
        return query

    @staticmethod
    def _ordered(query, sort_by: str, sort_order: str):
        column = SORT_COLUMNS.get(sort_by, Nomination.votes)
        primary = column.asc() if sort_order == 'asc' else column.desc()
        return query.order_by(primary, Nomination.created_at.desc())

    def list_public_nominations(self, args) -> Dict[str, Any]:
        page, limit = page_args(args, default_limit=20)
        status = args.get('status') or 'approved'
        if status not in PUBLIC_STATUSES:
            status = 'approved'

        key_source = json.dumps({**args.to_dict(), 'status': status, 'page': page, 'limit': limit}, sort_keys=True)
        cache_key = f"{NOMINATION_CACHE_PREFIX}:{hashlib.sha1(key_source.encode()).hexdigest()}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        query = self._ordered(
            self._filtered_query(args, status),
            args.get('sortBy', 'votes'),
            args.get('sortOrder', 'desc'),
        )
        result_page = paginate(query, page, limit)
        result = {
            'nominations': [n.to_dict() for n in result_page.items],
            'pagination': result_page.meta(),
        }
        cache.set(cache_key, result, current_app.config['NOMINATION_CACHE_TTL'])
        return result

    def list_admin_nominations(self, args) -> Dict[str, Any]:
        page, limit = page_args(args, default_limit=50)
        query = self._ordered(
            self._filtered_query(args, args.get('status')),
            args.get('sortBy', 'createdAt'),
            args.get('sortOrder', 'desc'),
        )
        result_page = paginate(query, page, limit)
        summary_rows = db.session.query(Nomination.status, func.count(Nomination.id)).group_by(Nomination.status).all()
        return {
            'nominations': [n.to_dict(include_admin=True) for n in result_page.items],
            'pagination': result_page.meta(),
            'statusSummary': {status: count for status, count in summary_rows},
        }

    def get_nomination(self, nomination_id) -> Nomination:
        nomination = db.session.get(Nomination, parse_uuid(nomination_id, "Nomination not found"))
        if nomination is None:
            raise NotFoundError("Nomination not found")
        return nomination

    def get_public_nomination(self, id_or_slug: str) -> Nomination:
        try:
            nomination = db.session.get(Nomination, uuid.UUID(id_or_slug))
        except ValueError:
            nomination = db.session.query(Nomination).filter_by(slug=id_or_slug).first()
        if nomination is None or nomination.status not in PUBLIC_STATUSES:
            raise NotFoundError("Nomination not found")
        return nomination

    # Voting

    def cast_vote(self, nomination_id, payload: Dict[str, Any], ip_address: str = None) -> Dict[str, Any]:
        """
        Record one public vote

        Uniqueness per (nomination, e-mail) is enforced by the votes table, so
        two concurrent votes with the same e-mail cannot both be stored.
        """
        data = parse_payload(VoteSchema, payload)
        nomination = self.get_nomination(nomination_id)
        if nomination.status != 'approved':
            raise BadRequestError("This nomination is not available for voting")

        db.session.add(Vote(
            nomination_id=nomination.id,
            voter_email=data.voter_email,
            voter_name=data.voter_name,
            ip_address=ip_address,
        ))
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateVoteError()

        vote_count = select(func.count(Vote.id)).where(Vote.nomination_id == nomination.id).scalar_subquery()
        db.session.execute(
            update(Nomination)
            .where(Nomination.id == nomination.id)
            .values(votes=vote_count)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        db.session.refresh(nomination)

        cache.invalidate(f"{NOMINATION_CACHE_PREFIX}*")
        logger.info(f"Vote recorded for nomination {nomination.id} (total {nomination.votes})")
        return {
            'nomination': {
                'id': str(nomination.id),
                'nomineeName': nomination.nominee_name,
                'totalVotes': nomination.votes,
            }
        }

    def vote_status(self, nomination_id, email: Optional[str]) -> Dict[str, Any]:
        email = normalize_email(email)
        if not email:
            raise BadRequestError("Email is required")
        nomination = self.get_nomination(nomination_id)
        return {'hasVoted': nomination.has_voted(email), 'totalVotes': nomination.votes}

    # Review workflow

    def change_status(self, nomination_id, payload: Dict[str, Any], reviewer: Optional[User]) -> Dict[str, Any]:
        """
        Move a nomination through the review workflow

        Queues the nominator's status e-mail and, when the nomination enters a
        certificate-bearing status without a certificate, one certificate job.
        """
        data = parse_payload(StatusUpdateSchema, payload)
        nomination = self.get_nomination(nomination_id)
        previous = nomination.status

        if not can_transition(previous, data.status):
            raise InvalidTransitionError(previous, data.status)

        nomination.status = data.status
        if data.admin_notes is not None:
            nomination.admin_notes = data.admin_notes
        nomination.reviewed_by_id = reviewer.id if reviewer is not None else None
        nomination.reviewed_at = utcnow()
        db.session.commit()
        self._invalidate_listings()

        logger.info(f"Nomination {nomination.id} status {previous} -> {data.status}")

        side_effects = {'notificationIds': [], 'certificateQueued': False, 'certificateJobId': None}

        email_job = queue_email(
            'nomination_status_update', nomination.nominator_email,
            nomination_context(nomination), related=nomination
        )
        if email_job is not None:
            side_effects['notificationIds'].append(str(email_job.id))

        if data.status != previous and data.status in CERTIFICATE_STATUSES:
            certificate_job = queue_certificate_generation(nomination)
            if certificate_job is not None:
                side_effects['certificateQueued'] = True
                side_effects['certificateJobId'] = str(certificate_job.id)

        return {
            'nomination': nomination.to_dict(include_admin=True),
            'sideEffects': side_effects,
        }

    def update_nomination(self, nomination_id, payload: Dict[str, Any],
                          photo: Optional[FileStorage] = None) -> Nomination:
        nomination = self.get_nomination(nomination_id)
        current = {**nomination.to_dict(include_admin=True), 'category': str(nomination.category_id)}
        data = parse_payload(NominationUpdateSchema, merge_update(NominationUpdateSchema, current, payload))

        category_id = parse_uuid(data.category, "Award category not found")
        if category_id != nomination.category_id:
            category_id = self._active_category(category_id).id

        new_photo = storage.save_image(photo, 'awards') if photo is not None and photo.filename else None
        old_photo = nomination.nominee_photo

        nomination.nominee_name = data.nominee_name
        nomination.nominee_title = data.nominee_title
        nomination.nominee_company = data.nominee_company
        nomination.nominee_country = data.nominee_country
        nomination.category_id = category_id
        nomination.nomination_reason = data.nomination_reason
        nomination.achievements = data.achievements
        nomination.impact_description = data.impact_description
        nomination.nominator_name = data.nominator_name
        nomination.nominator_email = data.nominator_email
        nomination.nominator_phone = data.nominator_phone
        nomination.nominator_organization = data.nominator_organization
        nomination.featured = data.featured
        nomination.display_order = data.display_order
        if new_photo:
            nomination.nominee_photo = new_photo

        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            storage.delete(new_photo)
            raise

        if new_photo:
            storage.delete(old_photo)
        self._invalidate_listings()
        return nomination

    def delete_nomination(self, nomination_id) -> None:
        """Delete a nomination with its votes and local photo, then notify the nominator"""
        nomination = self.get_nomination(nomination_id)
        context = nomination_context(nomination)
        recipient = nomination.nominator_email
        photo = nomination.nominee_photo

        db.session.delete(nomination)
        db.session.commit()

        storage.delete(photo)
        self._invalidate_listings()
        logger.info(f"Nomination {nomination_id} deleted")

        queue_email('nomination_deleted', recipient, context)

    # Reporting

    def stats(self) -> Dict[str, Any]:
        general = db.session.query(
            func.count(Nomination.id),
            func.sum(case((Nomination.status == 'approved', 1), else_=0)),
            func.sum(case((Nomination.status == 'pending', 1), else_=0)),
            func.sum(Nomination.votes),
            func.sum(case((Nomination.nominee_country == 'Uganda', 1), else_=0)),
            func.sum(case((Nomination.nominee_country != 'Uganda', 1), else_=0)),
        ).one()
        total, approved, pending, votes, ugandan, international = general

        category_rows = db.session.query(
            AwardCategory.id, AwardCategory.name,
            func.count(Nomination.id), func.sum(Nomination.votes),
        ).join(Nomination, Nomination.category_id == AwardCategory.id).group_by(
            AwardCategory.id, AwardCategory.name
        ).all()

        top = db.session.query(Nomination).filter_by(status='approved').order_by(
            Nomination.votes.desc(), Nomination.created_at.desc()
        ).limit(10).all()

        return {
            'generalStats': {
                'totalNominations': total or 0,
                'approvedNominations': int(approved or 0),
                'pendingNominations': int(pending or 0),
                'totalVotes': int(votes or 0),
                'ugandanNominees': int(ugandan or 0),
                'internationalNominees': int(international or 0),
            },
            'categoryStats': [
                {'categoryId': str(cid), 'categoryName': name, 'count': count, 'totalVotes': int(cat_votes or 0)}
                for cid, name, count, cat_votes in category_rows
            ],
            'topNominations': [
                {
                    'id': str(n.id),
                    'nomineeName': n.nominee_name,
                    'nomineePhoto': n.nominee_photo,
                    'votes': n.votes,
                    'category': n.category.name if n.category else None,
                }
                for n in top
            ],
        }


awards_service = AwardsService()

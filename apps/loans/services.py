# loans/services.py

"""
Loans Business Logic Services

- LoanLifecycleService: every status write on a loan application, from
  starting an application to disbursement
- GuarantorService: guarantor invitations and responses
- VotingService: member ballots on loans under vote
- RepaymentService: repayments and derived standing of disbursed loans
- get_loan_status(): status snapshot read model with lazy fee reconciliation

Every write runs in one atomic block that re-reads the loan with
select_for_update(), writes the status, its history row and any ledger row,
then queues notifications for after commit.
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction, IntegrityError
import logging

from core.exceptions import (
    ValidationError,
    NotFoundError,
    InvalidStateError,
    InsufficientSavingsError,
    InsufficientGuarantorsError,
    ActiveApplicationExistsError,
    FeePaymentNotFoundError,
    NotPermittedError,
    DuplicateGuarantorError,
    DuplicateVoteError,
)
from core.policy import get_policy
from core.utils import atomic_operation, format_money, get_sacco_now, quantize_money
from members.models import Member
from notifications.services import (
    notify_member,
    notify_all,
    notify_role,
    notify_roles,
    queue_notification,
)
from savings.models import Transaction
from savings.services import LedgerReader
from savings.utils import generate_reference
from .forms import (
    LoanDetailsForm,
    FeeReferenceForm,
    GuarantorResponseForm,
    VoteForm,
    FinalizeForm,
    RepaymentForm,
)
from .models import LoanApplication, GuarantorRequest, Vote, LoanStatusChange
from .utils import (
    validate_transition,
    calculate_disbursement_interest,
    calculate_loan_schedule,
    derive_loan_standing,
)

logger = logging.getLogger(__name__)

Status = LoanApplication.Status
Role = Member.Role

# Roles allowed to trigger each official action (ADMIN may do all of them)
ACTION_ROLES = {
    'verify': (Role.LOAN_OFFICER,),
    'table': (Role.SECRETARY,),
    'open_voting': (Role.CHAIRPERSON,),
    'finalize': (Role.SECRETARY,),
    'disburse': (Role.TREASURER,),
    'record_repayment': (Role.TREASURER,),
}


# =============================================================================
# SHARED HELPERS
# =============================================================================

def _bind(form_class, data):
    """Validate raw input with a form; raise ValidationError when invalid"""
    form = form_class(data=data)
    if not form.is_valid():
        raise ValidationError.from_form(form)
    return form.cleaned_data


def get_loan(loan, lock=False):
    """
    Fetch a loan application by instance or primary key.

    Args:
        loan: LoanApplication or its pk
        lock (bool): Re-read with select_for_update() (inside atomic blocks)

    Raises:
        NotFoundError
    """
    pk = loan.pk if isinstance(loan, LoanApplication) else loan
    queryset = LoanApplication.objects.select_related('member')
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=pk)
    except (LoanApplication.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f"Loan application {pk} not found")


def get_member(member):
    pk = member.pk if isinstance(member, Member) else member
    try:
        return Member.objects.get(pk=pk)
    except (Member.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f"Member {pk} not found")


def check_role(actor, action):
    """Raise NotPermittedError unless actor holds a role allowed for action"""
    if actor is None:
        return
    allowed = ACTION_ROLES.get(action, ()) + (Role.ADMIN,)
    if actor.role not in allowed:
        raise NotPermittedError(
            f"{actor.get_role_display()} cannot {action.replace('_', ' ')} loans"
        )


def check_owner(loan, actor):
    if actor is not None and actor.pk != loan.member_id:
        raise NotPermittedError("Only the applicant can do this on their loan application")


def set_status(loan, target, actor=None, note=''):
    """
    Write a new status and its history row.

    Callers hold the row lock and have already validated the transition.
    """
    from_status = loan.status
    loan.status = target
    loan.stamp_actor(actor)
    loan.set_change_reason(note or f"{from_status} -> {target}")
    loan.save()

    LoanStatusChange.objects.create(
        loan_application=loan,
        from_status=from_status or '',
        to_status=target,
        actor=actor,
        note=(note or '')[:255],
    )

    logger.info(
        f"Loan {loan.application_number}: {from_status} -> {target}"
        f"{f' by {actor.member_number}' if actor else ''}"
    )
    return loan


# =============================================================================
# LOAN LIFECYCLE SERVICE
# =============================================================================

class LoanLifecycleService:
    """Moves loan applications through the lifecycle state machine"""

    # -------------------------------------------------------------------------
    # APPLICATION & FEE
    # -------------------------------------------------------------------------

    @staticmethod
    def start_application(member, policy=None):
        """
        Open a new application in FEE_PENDING.

        Raises:
            ActiveApplicationExistsError: member already has a non-terminal application
        """
        policy = policy or get_policy()
        member = get_member(member)

        with atomic_operation('start loan application'):
            # Serialises concurrent starts by the same member
            Member.objects.select_for_update().get(pk=member.pk)

            existing = LoanApplication.get_open_application(member)
            if existing:
                raise ActiveApplicationExistsError(
                    f"You already have an active loan application "
                    f"({existing.application_number}, {existing.get_status_display()})"
                )

            loan = LoanApplication(
                member=member,
                status=Status.FEE_PENDING,
                fee_amount=policy.processing_fee,
            )
            loan.stamp_actor(member)

            try:
                with transaction.atomic():
                    loan.save()
            except IntegrityError:
                raise ActiveApplicationExistsError("You already have an active loan application")

            LoanStatusChange.objects.create(
                loan_application=loan,
                from_status='',
                to_status=Status.FEE_PENDING,
                actor=member,
                note='Application started',
            )

        logger.info(f"Loan application {loan.application_number} started by member {member.member_number}")
        return loan

    @staticmethod
    def reconcile_fee(loan):
        """
        Link the member's latest unlinked processing-fee payment to a
        FEE_PENDING application and advance it to FEE_PAID.

        Safe to call repeatedly: does nothing unless the loan is FEE_PENDING
        and an unlinked payment exists.

        Returns:
            LoanApplication: the (possibly updated) loan
        """
        loan = get_loan(loan)
        if loan.status != Status.FEE_PENDING:
            return loan

        with atomic_operation('reconcile fee payment'):
            loan = get_loan(loan, lock=True)
            if loan.status != Status.FEE_PENDING:
                return loan

            payment = LedgerReader.latest_unlinked_fee_payment(loan.member)
            if payment is None:
                return loan

            loan.fee_transaction_ref = payment.reference_code
            try:
                with transaction.atomic():
                    set_status(loan, Status.FEE_PAID, note=f"Fee reconciled from {payment.reference_code}")
            except IntegrityError:
                # Linked to another application by a concurrent request
                logger.warning(
                    f"Fee reference {payment.reference_code} already linked; "
                    f"loan {loan.application_number} left in FEE_PENDING"
                )
                return get_loan(loan)

        return loan

    @staticmethod
    def pay_fee(loan, reference, actor=None, policy=None):
        """
        Record the processing fee payment and link it in one step.

        Raises:
            ValidationError: malformed reference
            InvalidStateError: loan is not FEE_PENDING
            DuplicateReferenceError: reference already recorded
        """
        policy = policy or get_policy()
        reference = _bind(FeeReferenceForm, {'reference': reference})['reference']

        with atomic_operation('pay processing fee'):
            loan = get_loan(loan, lock=True)
            check_owner(loan, actor)
            validate_transition(loan.status, Status.FEE_PAID, action='pay the processing fee')

            payment = LedgerReader.record_fee_payment(
                loan.member, reference, amount=loan.fee_amount, policy=policy, actor=actor
            )
            loan.fee_transaction_ref = payment.reference_code
            set_status(loan, Status.FEE_PAID, actor, note=f"Fee paid ({payment.reference_code})")

        return loan

    # -------------------------------------------------------------------------
    # MEMBER SUBMISSION
    # -------------------------------------------------------------------------

    @staticmethod
    def submit_details(loan, amount, purpose, repayment_weeks, actor=None, policy=None):
        """
        Record amount, purpose and term (FEE_PAID -> PENDING_GUARANTORS).
        A FEE_PENDING loan is reconciled against the fee ledger first.

        Raises:
            ValidationError: amount/purpose/weeks out of range
            FeePaymentNotFoundError: no processing fee payment to link
            InsufficientSavingsError: amount above savings x multiplier
        """
        policy = policy or get_policy()
        details = _bind(LoanDetailsForm, {
            'amount': amount,
            'purpose': purpose,
            'repayment_weeks': repayment_weeks,
        })

        loan = LoanLifecycleService.reconcile_fee(loan)

        with atomic_operation('submit loan details'):
            loan = get_loan(loan, lock=True)
            check_owner(loan, actor)

            if loan.status == Status.FEE_PENDING:
                raise FeePaymentNotFoundError(
                    f"Processing fee of {format_money(loan.fee_amount, currency=policy.currency)} "
                    f"has not been paid for loan {loan.application_number}"
                )

            validate_transition(loan.status, Status.PENDING_GUARANTORS, action='submit loan details')

            multiplier = policy.loan_multiplier
            savings = LedgerReader.sum_completed_deposits(loan.member)
            limit = quantize_money(savings * multiplier)

            if details['amount'] > limit:
                raise InsufficientSavingsError(
                    f"Limit exceeded (Max {multiplier.normalize():f}x Savings). "
                    f"Your limit is {format_money(limit, currency=policy.currency)}",
                    limit=limit,
                    multiplier=multiplier,
                )

            loan.amount_requested = details['amount']
            loan.purpose = details['purpose']
            loan.repayment_weeks = details['repayment_weeks']
            set_status(loan, Status.PENDING_GUARANTORS, actor, note='Loan details submitted')

        return loan

    @staticmethod
    def final_submit(loan, actor=None, policy=None):
        """
        Send the application for review (PENDING_GUARANTORS -> SUBMITTED).

        Raises:
            InsufficientGuarantorsError: fewer accepted guarantors than required
        """
        policy = policy or get_policy()

        with atomic_operation('submit application for review'):
            loan = get_loan(loan, lock=True)
            check_owner(loan, actor)
            validate_transition(loan.status, Status.SUBMITTED, action='submit for review')

            required = policy.min_guarantors
            accepted = loan.guarantor_requests.filter(status=GuarantorRequest.Status.ACCEPTED).count()
            if accepted < required:
                raise InsufficientGuarantorsError(
                    f"Need {required} accepted guarantors. You have {accepted}.",
                    required=required,
                    accepted=accepted,
                )

            set_status(loan, Status.SUBMITTED, actor, note=f"{accepted} guarantors accepted")
            queue_notification(
                notify_role, Role.SECRETARY,
                f"Loan {loan.application_number} from {loan.member.get_full_name()} is ready for review"
            )

        return loan

    # -------------------------------------------------------------------------
    # OFFICIALS
    # -------------------------------------------------------------------------

    @staticmethod
    def verify(loan, actor=None, note=''):
        """Loan officer verification (SUBMITTED -> VERIFIED)"""
        check_role(actor, 'verify')

        with atomic_operation('verify loan'):
            loan = get_loan(loan, lock=True)
            validate_transition(loan.status, Status.VERIFIED, action='verify')
            set_status(loan, Status.VERIFIED, actor, note=note or 'Verified by loan officer')
            queue_notification(
                notify_member, loan.member,
                f"Your loan application {loan.application_number} has been verified "
                f"and will be tabled for the members' vote"
            )

        return loan

    @staticmethod
    def table(loan, actor=None, note=''):
        """Secretary places the loan on the agenda (VERIFIED -> TABLED)"""
        check_role(actor, 'table')

        with atomic_operation('table loan'):
            loan = get_loan(loan, lock=True)
            validate_transition(loan.status, Status.TABLED, action='table')
            set_status(loan, Status.TABLED, actor, note=note or 'Tabled for voting')
            queue_notification(
                notify_roles, (Role.ADMIN, Role.CHAIRPERSON),
                f"AGENDA: Loan {loan.application_number} ({format_money(loan.amount_requested)}) "
                f"tabled for voting"
            )

        return loan

    @staticmethod
    def open_voting(loan, actor=None):
        """Chairperson opens the ballot (TABLED -> VOTING)"""
        check_role(actor, 'open_voting')

        with atomic_operation('open voting'):
            loan = get_loan(loan, lock=True)
            validate_transition(loan.status, Status.VOTING, action='open voting')
            set_status(loan, Status.VOTING, actor, note='Voting opened')
            queue_notification(
                notify_all,
                f"VOTING OPEN: Loan {loan.application_number} for "
                f"{format_money(loan.amount_requested)} ({loan.purpose}). Cast your vote."
            )

        return loan

    @staticmethod
    def finalize(loan, decision, actor=None, note=''):
        """
        Secretary records the outcome of the vote (VOTING -> APPROVED/REJECTED).

        The tally is informational; the decision is the secretary's.
        """
        check_role(actor, 'finalize')
        decision = _bind(FinalizeForm, {'decision': decision})['decision']

        with atomic_operation('finalize vote'):
            loan = get_loan(loan, lock=True)
            validate_transition(loan.status, decision, action='finalize')

            votes = loan.votes.all()
            yes = sum(1 for v in votes if v.decision == Vote.Decision.YES)
            no = len(votes) - yes

            set_status(loan, decision, actor, note=note or f"Vote result YES {yes} / NO {no}")
            queue_notification(
                notify_all,
                f"RESULT: Loan {loan.application_number} has been {decision}"
            )

        return loan

    @staticmethod
    def disburse(loan, actor=None, policy=None, now=None):
        """
        Treasurer pays out the loan (APPROVED -> ACTIVE).

        Charges one-time interest, stamps disbursed_at and writes the
        LOAN_DISBURSEMENT ledger row in the same transaction as the status.
        """
        check_role(actor, 'disburse')
        policy = policy or get_policy()
        now = get_sacco_now(now)

        with atomic_operation('disburse loan'):
            loan = get_loan(loan, lock=True)
            validate_transition(loan.status, Status.ACTIVE, action='disburse')

            rate = policy.interest_rate
            interest, total_due = calculate_disbursement_interest(loan.amount_requested, rate)

            loan.interest_amount = interest
            loan.total_due = total_due
            loan.disbursed_at = now

            LedgerReader.record_transaction(
                loan.member,
                Transaction.TransactionType.LOAN_DISBURSEMENT,
                loan.amount_requested,
                reference=f"DISB-{loan.application_number}",
                description=f"Disbursement of loan {loan.application_number}",
                actor=actor,
            )
            set_status(loan, Status.ACTIVE, actor, note=f"Disbursed at {rate}% interest")

            currency = policy.currency
            queue_notification(
                notify_member, loan.member,
                f"Your loan {loan.application_number} of "
                f"{format_money(loan.amount_requested, currency=currency)} has been disbursed. "
                f"Total due: {format_money(total_due, currency=currency)} over {loan.repayment_weeks} weeks"
            )

        logger.info(
            f"Disbursed {loan.amount_requested} on loan {loan.application_number}: "
            f"interest {interest}, total due {total_due}"
        )
        return loan


# =============================================================================
# GUARANTOR SERVICE
# =============================================================================

class GuarantorService:
    """Guarantor invitations for loans in PENDING_GUARANTORS"""

    @staticmethod
    def add_guarantor(loan, guarantor, actor=None):
        """
        Invite a member to guarantee a loan.

        Raises:
            ValidationError: self-guarantee or inactive guarantor
            InvalidStateError: loan is not PENDING_GUARANTORS
            DuplicateGuarantorError: member already invited to this loan
        """
        guarantor = get_member(guarantor)

        with atomic_operation('add guarantor'):
            loan = get_loan(loan, lock=True)
            check_owner(loan, actor)

            if loan.status != Status.PENDING_GUARANTORS:
                raise InvalidStateError(
                    f"Guarantors can only be added while the loan is PENDING_GUARANTORS "
                    f"(currently {loan.status})",
                    current_status=loan.status,
                )

            if guarantor.pk == loan.member_id:
                raise ValidationError("You cannot guarantee your own loan", code='self_guarantee')

            if not guarantor.is_active:
                raise ValidationError("Guarantor must be an active member", code='inactive_guarantor')

            request = GuarantorRequest(loan_application=loan, guarantor=guarantor)
            request.stamp_actor(actor)

            try:
                with transaction.atomic():
                    request.save()
            except IntegrityError:
                raise DuplicateGuarantorError("Already requested this member")

            queue_notification(
                notify_member, guarantor,
                f"{loan.member.get_full_name()} has asked you to guarantee loan "
                f"{loan.application_number} of {format_money(loan.amount_requested)}"
            )

        logger.info(f"Guarantor {guarantor.member_number} invited to loan {loan.application_number}")
        return request

    @staticmethod
    def respond(request, guarantor, decision, now=None):
        """
        Guarantor accepts or declines an invitation. Each request is
        answered once.

        Raises:
            NotPermittedError: request addressed to someone else
            InvalidStateError: already answered, or the loan is past PENDING_GUARANTORS
        """
        decision = _bind(GuarantorResponseForm, {'decision': decision})['decision']
        now = get_sacco_now(now)
        pk = request.pk if isinstance(request, GuarantorRequest) else request

        with atomic_operation('respond to guarantor request'):
            try:
                request = (
                    GuarantorRequest.objects
                    .select_for_update()
                    .select_related('loan_application', 'loan_application__member', 'guarantor')
                    .get(pk=pk)
                )
            except (GuarantorRequest.DoesNotExist, DjangoValidationError, ValueError, TypeError):
                raise NotFoundError(f"Guarantor request {pk} not found")

            guarantor_pk = guarantor.pk if isinstance(guarantor, Member) else guarantor
            if str(request.guarantor_id) != str(guarantor_pk):
                raise NotPermittedError("This guarantor request is not addressed to you")

            if not request.is_pending:
                raise InvalidStateError(
                    f"You have already {request.get_status_display().lower()} this request",
                    current_status=request.status,
                    target_status=decision,
                )

            loan = request.loan_application
            if loan.status != Status.PENDING_GUARANTORS:
                raise InvalidStateError(
                    f"Loan {loan.application_number} is no longer collecting guarantors "
                    f"(currently {loan.status})",
                    current_status=loan.status,
                )

            request.status = decision
            request.responded_at = now
            request.stamp_actor(request.guarantor)
            request.save()

            verb = 'accepted' if decision == GuarantorRequest.Status.ACCEPTED else 'declined'
            queue_notification(
                notify_member, loan.member,
                f"{request.guarantor.get_full_name()} has {verb} to guarantee loan {loan.application_number}"
            )

        logger.info(f"Guarantor {request.guarantor.member_number} {verb} loan {loan.application_number}")
        return request


# =============================================================================
# VOTING SERVICE
# =============================================================================

class VotingService:

    @staticmethod
    def cast_vote(loan, member, decision):
        """
        Record a member's YES/NO ballot.

        Raises:
            InvalidStateError: loan is not VOTING
            NotPermittedError: owner voting on their own loan, or inactive member
            DuplicateVoteError: member already voted on this loan
        """
        decision = _bind(VoteForm, {'decision': decision})['decision']
        member = get_member(member)

        with atomic_operation('cast vote'):
            loan = get_loan(loan, lock=True)

            if loan.status != Status.VOTING:
                raise InvalidStateError(
                    f"Voting is not open for loan {loan.application_number} (currently {loan.status})",
                    current_status=loan.status,
                )

            if member.pk == loan.member_id:
                raise NotPermittedError("You cannot vote on your own loan")

            if not member.is_active:
                raise NotPermittedError("Only active members can vote")

            vote = Vote(loan_application=loan, member=member, decision=decision)
            vote.stamp_actor(member)

            try:
                with transaction.atomic():
                    vote.save()
            except IntegrityError:
                raise DuplicateVoteError("You have already voted on this loan")

        logger.info(f"Member {member.member_number} voted {decision} on loan {loan.application_number}")
        return vote


# =============================================================================
# REPAYMENT SERVICE
# =============================================================================

class RepaymentService:
    """Repayments and derived standing of disbursed loans"""

    @staticmethod
    def _apply_standing(loan, now, policy, actor=None):
        """Persist the derived standing of a locked loan if it changed"""
        schedule = calculate_loan_schedule(loan, now, policy.grace_period_weeks)
        target = derive_loan_standing(schedule, loan)

        if target != loan.status:
            validate_transition(loan.status, target)
            set_status(loan, target, actor, note=f"Schedule: {schedule['status_text']}")

        return schedule

    @classmethod
    def record_repayment(cls, loan, amount, reference=None, actor=None, policy=None, now=None):
        """
        Record a repayment, raise amount_repaid and refresh the standing.

        Raises:
            ValidationError: amount not positive
            InvalidStateError: loan is not being repaid
            DuplicateReferenceError: reference already recorded
        """
        check_role(actor, 'record_repayment')
        policy = policy or get_policy()
        now = get_sacco_now(now)
        data = _bind(RepaymentForm, {'amount': amount, 'reference': reference or ''})

        with atomic_operation('record repayment'):
            loan = get_loan(loan, lock=True)

            if loan.status not in LoanApplication.REPAYABLE_STATUSES:
                raise InvalidStateError(
                    f"Repayments can only be recorded on disbursed loans (currently {loan.status})",
                    current_status=loan.status,
                )

            LedgerReader.record_transaction(
                loan.member,
                Transaction.TransactionType.LOAN_REPAYMENT,
                data['amount'],
                reference=data['reference'] or generate_reference('RPY', now=now),
                description=f"Repayment of loan {loan.application_number}",
                actor=actor,
            )

            loan.amount_repaid = loan.amount_repaid + data['amount']
            loan.stamp_actor(actor)
            loan.save(update_fields=['amount_repaid', 'updated_at', 'updated_by_id'])

            cls._apply_standing(loan, now, policy, actor)

            message = (
                f"Repayment of {format_money(data['amount'], currency=policy.currency)} received "
                f"for loan {loan.application_number}. "
                f"Balance: {format_money(loan.outstanding_balance, currency=policy.currency)}"
            )
            if loan.status == Status.COMPLETED:
                message = f"Loan {loan.application_number} is fully repaid. Thank you!"
            queue_notification(notify_member, loan.member, message)

        logger.info(f"Repayment {data['amount']} recorded on loan {loan.application_number}")
        return loan

    @classmethod
    def refresh_standing(cls, loan, policy=None, now=None):
        """
        Re-derive ACTIVE / IN_ARREARS / OVERDUE / COMPLETED from the
        schedule and persist it only when it changed.
        """
        policy = policy or get_policy()
        now = get_sacco_now(now)

        loan = get_loan(loan)
        if loan.status not in LoanApplication.REPAYABLE_STATUSES:
            return loan

        with atomic_operation('refresh loan standing'):
            loan = get_loan(loan, lock=True)
            if loan.status in LoanApplication.REPAYABLE_STATUSES:
                cls._apply_standing(loan, now, policy)

        return loan


# =============================================================================
# READ MODEL
# =============================================================================

def get_loan_status(member, policy=None, now=None):
    """
    Status snapshot of the member's most recent loan application.

    Reading a FEE_PENDING application reconciles any unlinked fee payment
    first. Disbursed loans carry their computed repayment schedule.

    Returns:
        dict or None: None when the member has never applied
    """
    policy = policy or get_policy()
    now = get_sacco_now(now)
    member = get_member(member)

    loan = LoanApplication.objects.filter(member=member).order_by('-created_at').first()
    if loan is None:
        return None

    if loan.status == Status.FEE_PENDING:
        loan = LoanLifecycleService.reconcile_fee(loan)

    savings = LedgerReader.sum_completed_deposits(member)
    snapshot = {
        'loan': loan,
        'application_number': loan.application_number,
        'status': loan.status,
        'status_display': loan.get_status_display(),
        'amount_requested': loan.amount_requested,
        'fee_amount': loan.fee_amount,
        'fee_paid': bool(loan.fee_transaction_ref),
        'total_savings': savings,
        'loan_limit': quantize_money(savings * policy.loan_multiplier),
        'accepted_guarantors': loan.guarantor_requests.filter(
            status=GuarantorRequest.Status.ACCEPTED
        ).count(),
        'required_guarantors': policy.min_guarantors,
        'schedule': None,
        'standing': None,
    }

    if loan.status in LoanApplication.REPAYABLE_STATUSES and loan.disbursed_at:
        schedule = calculate_loan_schedule(loan, now, policy.grace_period_weeks)
        snapshot.update({
            'interest_amount': loan.interest_amount,
            'total_due': loan.total_due,
            'amount_repaid': loan.amount_repaid,
            'outstanding_balance': loan.outstanding_balance,
            'disbursed_at': loan.disbursed_at,
            'schedule': schedule,
            'standing': derive_loan_standing(schedule, loan),
        })

    return snapshot

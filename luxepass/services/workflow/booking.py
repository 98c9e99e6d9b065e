"""
Booking chain: category -> listing -> check-in -> check-out -> guests -> notes -> payment.
"""

from luxepass.constants.statuses import BOOKING_KIND_BOOKING, WorkflowState
from luxepass.services.catalog import Category, Listing
from luxepass.services.messaging.whatsapp import ButtonOption
from luxepass.services.payments.paystack import REFERENCE_PREFIX_BOOKING, build_payment_reference
from luxepass.services.sessions import SessionRecord
from luxepass.services.workflow.context import StepContext
from luxepass.services.workflow.forms import BookingForm, load_form, store_form
from luxepass.services.workflow.results import CheckoutRequest, StepResult
from luxepass.services.workflow.validation import (
    format_naira,
    match_choice,
    parse_check_in,
    parse_check_out,
    parse_guests,
    parse_notes,
)


def category_options(ctx: StepContext) -> list[ButtonOption]:
    return [ButtonOption(c.id, c.title) for c in ctx.catalog.categories]


def listing_options(category: Category) -> list[ButtonOption]:
    return [ButtonOption(item.id, item.title) for item in category.listings]


def _listing_lines(category: Category) -> str:
    return "\n".join(
        f"{i}. {item.title} - ₦{format_naira(item.nightly_rate)}/night (up to {item.max_guests} guests)"
        for i, item in enumerate(category.listings, start=1)
    )


def _form_listing(ctx: StepContext, form: BookingForm) -> Listing | None:
    return ctx.catalog.get_listing(form.category, form.listing_id)


def start_booking(ctx: StepContext, session: SessionRecord) -> StepResult:
    session.state = WorkflowState.BOOKING_CATEGORY
    store_form(session, BookingForm())
    return StepResult.reply(ctx.render("booking_category", session), *category_options(ctx))


def handle_category(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    options = category_options(ctx)
    category_id = match_choice(text, options)
    if category_id is None:
        return StepResult.retry(ctx.render("booking_category_invalid", session), *options)

    category = ctx.catalog.get_category(category_id)
    store_form(session, BookingForm(category=category_id))
    session.state = WorkflowState.BOOKING_LISTING
    return StepResult.reply(
        ctx.render(
            "booking_listing", session, category=category.title, listings=_listing_lines(category)
        ),
        *listing_options(category),
    )


def handle_listing(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, BookingForm)
    category = ctx.catalog.get_category(form.category)
    if category is None:
        return start_booking(ctx, session)

    options = listing_options(category)
    listing_id = match_choice(text, options)
    if listing_id is None:
        return StepResult.retry(ctx.render("booking_listing_invalid", session), *options)

    form.listing_id = listing_id
    store_form(session, form)
    session.state = WorkflowState.BOOKING_CHECK_IN
    listing = _form_listing(ctx, form)
    return StepResult.reply(ctx.render("booking_check_in", session, listing=listing.title))


def handle_check_in(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    check_in = parse_check_in(text, ctx.today)
    if check_in is None:
        return StepResult.retry(ctx.render("booking_check_in_invalid", session))

    form = load_form(session, BookingForm)
    form.check_in = check_in
    form.check_out = None
    store_form(session, form)
    session.state = WorkflowState.BOOKING_CHECK_OUT
    return StepResult.reply(ctx.render("booking_check_out", session, check_in=check_in.isoformat()))


def handle_check_out(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, BookingForm)
    listing = _form_listing(ctx, form)
    if listing is None:
        return start_booking(ctx, session)
    if form.check_in is None:
        session.state = WorkflowState.BOOKING_CHECK_IN
        return StepResult.reply(ctx.render("booking_check_in", session, listing=listing.title))

    check_out = parse_check_out(text, form.check_in)
    if check_out is None:
        return StepResult.retry(
            ctx.render("booking_check_out_invalid", session, check_in=form.check_in.isoformat())
        )

    form.check_out = check_out
    store_form(session, form)
    session.state = WorkflowState.BOOKING_GUESTS
    return StepResult.reply(ctx.render("booking_guests", session, max_guests=listing.max_guests))


def handle_guests(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, BookingForm)
    listing = _form_listing(ctx, form)
    if listing is None:
        return start_booking(ctx, session)

    guests = parse_guests(text, listing.max_guests)
    if guests is None:
        return StepResult.retry(
            ctx.render("booking_guests_invalid", session, max_guests=listing.max_guests)
        )

    form.guests = guests
    store_form(session, form)
    session.state = WorkflowState.BOOKING_NOTES
    return StepResult.reply(ctx.render("booking_notes", session))


def handle_notes(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    form = load_form(session, BookingForm)
    listing = _form_listing(ctx, form)
    if listing is None or form.nights <= 0 or form.guests is None:
        return start_booking(ctx, session)

    notes = parse_notes(text)
    if notes is None:
        return StepResult.retry(ctx.render("booking_notes", session))

    reference = build_payment_reference(REFERENCE_PREFIX_BOOKING, session.identifier, ctx.now_ms)
    amount = listing.nightly_rate * form.nights
    form.notes = notes
    form.reference = reference
    store_form(session, form)
    session.state = WorkflowState.BOOKING_PAYMENT

    details = {
        "listing_title": listing.title,
        "check_in": form.check_in.isoformat(),
        "check_out": form.check_out.isoformat(),
        "nights": form.nights,
        "guests": form.guests,
        "notes": notes,
        "nightly_rate": listing.nightly_rate,
    }
    return StepResult(
        checkout=CheckoutRequest(
            kind=BOOKING_KIND_BOOKING,
            reference=reference,
            amount=amount,
            summary_key="booking_summary",
            summary_values={
                "listing": listing.title,
                "check_in": details["check_in"],
                "check_out": details["check_out"],
                "nights": form.nights,
                "guests": form.guests,
                "notes": notes or "None",
                "amount": format_naira(amount),
            },
            payment_state=WorkflowState.BOOKING_PAYMENT,
            revert_state=WorkflowState.BOOKING_NOTES,
            category=form.category,
            listing_id=listing.id,
            details=details,
        )
    )


def handle_payment(ctx: StepContext, session: SessionRecord, text: str) -> StepResult:
    return StepResult.retry(ctx.render("payment_pending", session))

"""
Тесты календаря: загрузка диапазона, перезагрузка по событиям, статусы записей
"""
import asyncio
from datetime import date

import pytest

from crm.exceptions import (
    AlreadyClaimed,
    BackendError,
    DataUnavailable,
    InvalidTransition,
    MissingCustomer,
    TransientNetworkError
)
from crm.schemas import APPOINTMENTS, CUSTOMERS, SLOTS, AppointmentStatus
from crm.services.calendar import SlotReconciler, week_range
from crm.services.slots import SlotService

MONDAY = date(2025, 3, 10)
SUNDAY = date(2025, 3, 16)


def test_week_range():
    assert week_range(date(2025, 3, 12)) == (MONDAY, SUNDAY)
    assert week_range(MONDAY) == (MONDAY, SUNDAY)
    assert week_range(SUNDAY) == (MONDAY, SUNDAY)
    # неделя с воскресенья
    assert week_range(date(2025, 3, 12), week_starts_on=6) == (date(2025, 3, 9), date(2025, 3, 15))


def test_load_view_keeps_inclusive_range(context, slot_data):
    async def scenario():
        service = SlotService(context)
        for day in ("2025-03-09", "2025-03-10", "2025-03-13", "2025-03-16", "2025-03-17"):
            await service.create_slot(slot_data(date=day))
        return await SlotReconciler(context).load_view(MONDAY, SUNDAY)

    slots = asyncio.run(scenario())
    assert sorted(slot.date for slot in slots) == ["2025-03-10", "2025-03-13", "2025-03-16"]


def test_load_appointments_for_no_slots(context):
    assert asyncio.run(SlotReconciler(context).load_appointments_for_slots([])) == []


def test_reload_builds_view(context, slot_data):
    async def scenario():
        service = SlotService(context)
        late = await service.create_slot(slot_data(name="Spät", start="15:00", end="17:00", space=60))
        early = await service.create_slot(slot_data(name="Früh", start="08:00", end="10:00", space=60))
        view = await SlotReconciler(context).reload(MONDAY, SUNDAY)
        return view, early, late

    view, early, late = asyncio.run(scenario())
    assert [slot.id for slot in view.slots_for_day(date(2025, 3, 12))] == [early.id, late.id]
    assert [a.time for a in view.appointments_for_slot(early.id)] == ["08:00", "09:00"]
    assert view.status_counts() == {"empty": 4, "edit": 0, "okay": 0}
    assert len(view.days()) == 7
    assert view.error is None


def test_reload_without_range(context):
    reconciler = SlotReconciler(context)
    with pytest.raises(ValueError):
        asyncio.run(reconciler.reload())


def test_failed_reload_keeps_last_good_view(context, slot_data, monkeypatch):
    async def scenario():
        await SlotService(context).create_slot(slot_data())
        reconciler = SlotReconciler(context)
        good = await reconciler.reload(MONDAY, SUNDAY)

        async def unavailable(*args, **kwargs):
            raise TransientNetworkError("connection reset")

        monkeypatch.setattr(context.store, "get_full_list", unavailable)
        with pytest.raises(DataUnavailable):
            await reconciler.reload()
        return good, reconciler.view

    good, view = asyncio.run(scenario())
    assert view.error is not None
    assert view.slots == good.slots
    assert view.appointments == good.appointments


def test_events_are_coalesced_into_one_reload(context, slot_data):
    async def scenario():
        reconciler = SlotReconciler(context, debounce=0.2)
        await reconciler.start(MONDAY, SUNDAY)
        assert reconciler.reload_count == 1
        assert reconciler.view.slots == []

        # 1 слот + 4 записи + обновление списка записей = 6 событий
        await SlotService(context).create_slot(slot_data())
        await reconciler.wait_until_settled()

        direct = await SlotReconciler(context).reload(MONDAY, SUNDAY)
        await reconciler.stop()
        return reconciler, direct

    reconciler, direct = asyncio.run(scenario())
    assert reconciler.events_received == 6
    assert reconciler.reload_count == 2
    assert [slot.id for slot in reconciler.view.slots] == [slot.id for slot in direct.slots]
    assert sorted((a.id, a.status) for a in reconciler.view.appointments) == \
        sorted((a.id, a.status) for a in direct.appointments)


def gate_slot_loads(context, monkeypatch):
    """
    Первая загрузка слотов после вызова читает данные и ждёт release;
    blocked выставляется, когда она остановилась
    """
    release = asyncio.Event()
    blocked = asyncio.Event()
    original = context.store.get_full_list

    async def gated(collection, **kwargs):
        result = await original(collection, **kwargs)
        if collection == SLOTS and not blocked.is_set():
            blocked.set()
            await release.wait()
        return result

    monkeypatch.setattr(context.store, "get_full_list", gated)
    return release, blocked


def test_event_during_reload_runs_one_follow_up(context, slot_data, monkeypatch):
    async def scenario():
        reconciler = SlotReconciler(context, debounce=0.05)
        await reconciler.start(MONDAY, SUNDAY)
        release, blocked = gate_slot_loads(context, monkeypatch)

        in_flight = asyncio.ensure_future(reconciler.reload())
        await blocked.wait()
        slot = await SlotService(context).create_slot(slot_data())
        # окно debounce истекает, пока первая перезагрузка ещё идёт
        await asyncio.sleep(0.15)
        release.set()

        stale = await in_flight
        stale_slots = list(stale.slots)
        await reconciler.wait_until_settled()
        await reconciler.stop()
        return reconciler, slot, stale_slots

    reconciler, slot, stale_slots = asyncio.run(scenario())
    assert stale_slots == []
    assert reconciler.reload_count == 3
    assert [s.id for s in reconciler.view.slots] == [slot.id]
    assert len(reconciler.view.appointments) == 4


def test_reload_for_old_range_is_discarded(context, slot_data, monkeypatch):
    async def scenario():
        service = SlotService(context)
        await service.create_slot(slot_data())
        reconciler = SlotReconciler(context)
        first = await reconciler.reload(MONDAY, SUNDAY)

        await service.create_slot(slot_data(name="Besichtigung"))
        release, blocked = gate_slot_loads(context, monkeypatch)
        in_flight = asyncio.ensure_future(reconciler.reload())
        await blocked.wait()

        switch = asyncio.ensure_future(reconciler.set_range(date(2025, 3, 17), date(2025, 3, 23)))
        await asyncio.sleep(0.05)
        during_switch = reconciler.view
        release.set()

        stale = await in_flight
        switched = await switch
        await reconciler.stop()
        return first, during_switch, stale, switched

    first, during_switch, stale, switched = asyncio.run(scenario())
    assert during_switch is first
    assert stale is first
    assert len(first.slots) == 1
    assert switched.range_start == date(2025, 3, 17)
    assert switched.slots == []


def test_failed_event_reload_sets_error(context, slot_data, monkeypatch):
    async def scenario():
        reconciler = SlotReconciler(context, debounce=0.05)
        await reconciler.start(MONDAY, SUNDAY)

        async def rejected(*args, **kwargs):
            raise BackendError("Something went wrong while processing your request.", status=400)

        monkeypatch.setattr(context.store, "get_full_list", rejected)
        await SlotService(context).create_slot(slot_data())
        await reconciler.wait_until_settled()
        await reconciler.stop()
        return reconciler

    reconciler = asyncio.run(scenario())
    assert reconciler.reload_count == 2
    assert reconciler.view.slots == []
    assert "Something went wrong" in reconciler.view.error


def test_events_of_other_collections_are_ignored(context):
    async def scenario():
        reconciler = SlotReconciler(context)
        await reconciler.start(MONDAY, SUNDAY)
        await context.feed.subscribe(CUSTOMERS, reconciler.on_change_event)
        await context.store.create(CUSTOMERS, {"surname": "Müller"})
        await reconciler.wait_until_settled()
        await reconciler.stop()
        return reconciler

    reconciler = asyncio.run(scenario())
    assert reconciler.events_received == 0
    assert reconciler.reload_count == 1


def test_stop_and_set_range_manage_subscriptions(context, slot_data):
    async def scenario():
        await SlotService(context).create_slot(slot_data(date="2025-03-19"))
        reconciler = SlotReconciler(context)
        await reconciler.start(MONDAY, SUNDAY)
        first = reconciler.view
        subscribed = sorted(context.feed.subscribers)

        view = await reconciler.set_range(date(2025, 3, 17), date(2025, 3, 23))
        after_switch = sorted(context.feed.subscribers)

        await reconciler.stop()
        return first, view, subscribed, after_switch, dict(context.feed.subscribers)

    first, view, subscribed, after_switch, after_stop = asyncio.run(scenario())
    assert subscribed == sorted([SLOTS, APPOINTMENTS])
    assert after_switch == subscribed
    assert after_stop == {}
    assert first.slots == []
    assert [slot.date for slot in view.slots] == ["2025-03-19"]
    assert view.range_start == date(2025, 3, 17)


# ==================== Статусы записей ====================

async def first_appointment(context, slot_data):
    slot = await SlotService(context).create_slot(slot_data())
    return slot.appointments[0]


def test_claim_then_assign(context, slot_data):
    async def scenario():
        appointment_id = await first_appointment(context, slot_data)
        customer = await context.store.create(CUSTOMERS, {"surname": "Müller"})
        reconciler = SlotReconciler(context)
        claimed = await reconciler.claim_appointment(appointment_id)
        assigned = await reconciler.assign_customer(appointment_id, customer["id"])
        return claimed, assigned, customer

    claimed, assigned, customer = asyncio.run(scenario())
    assert claimed.status == AppointmentStatus.EDIT
    assert assigned.status == AppointmentStatus.OKAY
    assert assigned.customer == customer["id"]
    assert assigned.agent == "localagent00001"


def test_claim_of_claimed_appointment_fails(context, slot_data):
    async def scenario():
        appointment_id = await first_appointment(context, slot_data)
        reconciler = SlotReconciler(context)
        await reconciler.claim_appointment(appointment_id)
        with pytest.raises(AlreadyClaimed):
            await reconciler.claim_appointment(appointment_id)
        return await context.store.get_one(APPOINTMENTS, appointment_id)

    record = asyncio.run(scenario())
    assert record["status"] == "edit"


def test_assign_requires_customer_and_claim(context, slot_data):
    async def scenario():
        appointment_id = await first_appointment(context, slot_data)
        reconciler = SlotReconciler(context)
        with pytest.raises(InvalidTransition):
            await reconciler.assign_customer(appointment_id, "customer0000001")
        await reconciler.claim_appointment(appointment_id)
        with pytest.raises(MissingCustomer):
            await reconciler.assign_customer(appointment_id, "")
        return await context.store.get_one(APPOINTMENTS, appointment_id)

    record = asyncio.run(scenario())
    assert record["status"] == "edit"
    assert record["customer"] == ""


def test_release_and_empty(context, slot_data):
    async def scenario():
        appointment_id = await first_appointment(context, slot_data)
        customer = await context.store.create(CUSTOMERS, {"surname": "Weber"})
        reconciler = SlotReconciler(context)

        # release свободной записи ничего не меняет
        untouched = await reconciler.release_appointment(appointment_id)

        await reconciler.claim_appointment(appointment_id)
        released = await reconciler.release_appointment(appointment_id)

        await reconciler.claim_appointment(appointment_id)
        await reconciler.assign_customer(appointment_id, customer["id"])
        with pytest.raises(InvalidTransition):
            await reconciler.release_appointment(appointment_id)
        with pytest.raises(InvalidTransition):
            await reconciler.claim_appointment(appointment_id)

        emptied = await reconciler.empty_appointment(appointment_id)
        return untouched, released, emptied

    untouched, released, emptied = asyncio.run(scenario())
    assert untouched.status == AppointmentStatus.EMPTY
    assert released.status == AppointmentStatus.EMPTY
    assert released.customer == ""
    assert emptied.status == AppointmentStatus.EMPTY
    assert emptied.customer == ""


def test_transitions_patch_view_without_reload(context, slot_data):
    async def scenario():
        appointment_id = await first_appointment(context, slot_data)
        reconciler = SlotReconciler(context)
        await reconciler.reload(MONDAY, SUNDAY)
        await reconciler.claim_appointment(appointment_id)
        return reconciler, appointment_id

    reconciler, appointment_id = asyncio.run(scenario())
    assert reconciler.reload_count == 1
    statuses = {a.id: a.status for a in reconciler.view.appointments}
    assert statuses[appointment_id] == AppointmentStatus.EDIT
    assert list(statuses.values()).count(AppointmentStatus.EMPTY) == 3


def test_okay_iff_customer_in_view(context, slot_data):
    async def scenario():
        slot = await SlotService(context).create_slot(slot_data())
        customer = await context.store.create(CUSTOMERS, {"surname": "Schmidt"})
        reconciler = SlotReconciler(context)
        first, second = slot.appointments[0], slot.appointments[1]
        await reconciler.claim_appointment(first)
        await reconciler.assign_customer(first, customer["id"])
        await reconciler.claim_appointment(second)
        return await reconciler.reload(MONDAY, SUNDAY)

    view = asyncio.run(scenario())
    for appointment in view.appointments:
        assert (appointment.status == AppointmentStatus.OKAY) == bool(appointment.customer)
    okay = [a for a in view.appointments if a.status == AppointmentStatus.OKAY]
    assert okay[0].customer_name == "Schmidt"

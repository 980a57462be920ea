from datetime import date, timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from donor_registry.eligibility import DonorValidationError, ErrorKind, normalize_and_validate
from donor_registry.models.donor import Donor
from donor_registry.schemas.base_schema import SortOrder
from donor_registry.schemas.donor import DonorFilterField, DonorSortField, DonorUpdate
from donor_registry.services.donor_service import (
    DonorService,
    duplicate_fields_from_integrity_error,
)
from donor_registry.services.export_service import CSV_HEADER, donors_to_csv
from donor_registry.services.stats_service import DonorStatsService
from tests.factories import TestDataFactory


def donor_input(**overrides):
    return normalize_and_validate(TestDataFactory.create_donor_data(**overrides))


async def test_create_donor_derives_next_available_date(db_session):
    service = DonorService(db_session)

    donor = await service.create_donor(donor_input(lastDonation="2024-01-31"))

    assert donor.id is not None
    assert donor.last_donation == date(2024, 1, 31)
    assert donor.next_available_date == date(2024, 5, 1)
    assert donor.created_at is not None


async def test_create_donor_without_donation_has_no_next_date(db_session):
    donor = await DonorService(db_session).create_donor(donor_input())
    assert donor.last_donation is None
    assert donor.next_available_date is None


async def test_duplicate_contact_number_rejected(db_session):
    service = DonorService(db_session)
    first = await service.create_donor(donor_input())

    with pytest.raises(DonorValidationError) as exc:
        await service.create_donor(donor_input(contactNumber=first.contact_number))

    assert [(e.field, e.kind) for e in exc.value.errors] == [
        ("contactNumber", ErrorKind.DUPLICATE_VALUE)
    ]


async def test_duplicate_contact_and_cnic_both_named(db_session):
    service = DonorService(db_session)
    first = await service.create_donor(donor_input())

    with pytest.raises(DonorValidationError) as exc:
        await service.create_donor(
            donor_input(contactNumber=first.contact_number, cnicNumber=first.cnic_number)
        )

    assert set(exc.value.validation_errors) == {"contactNumber", "cnicNumber"}
    assert exc.value.message == "Duplicate entry found"


async def test_storage_uniqueness_violation_mapped_to_duplicate(db_session, monkeypatch):
    service = DonorService(db_session)
    first = await service.create_donor(donor_input())

    async def no_duplicates(*args, **kwargs):
        return []

    monkeypatch.setattr(service, "find_duplicates", no_duplicates)

    with pytest.raises(DonorValidationError) as exc:
        await service.create_donor(donor_input(cnicNumber=first.cnic_number))

    assert exc.value.errors[0].field == "cnicNumber"
    assert exc.value.errors[0].kind == ErrorKind.DUPLICATE_VALUE


def test_duplicate_fields_from_integrity_error():
    sqlite_error = IntegrityError(
        "INSERT", {}, Exception("UNIQUE constraint failed: donors.contact_number")
    )
    postgres_error = IntegrityError(
        "INSERT",
        {},
        Exception('duplicate key value violates unique constraint "ix_donors_cnic_number"'),
    )
    unknown_error = IntegrityError("INSERT", {}, Exception("constraint failed"))

    assert duplicate_fields_from_integrity_error(sqlite_error) == ["contactNumber"]
    assert duplicate_fields_from_integrity_error(postgres_error) == ["cnicNumber"]
    assert duplicate_fields_from_integrity_error(unknown_error) == [
        "contactNumber",
        "cnicNumber",
    ]


async def test_update_recomputes_next_available_date(db_session):
    service = DonorService(db_session)
    donor = await service.create_donor(donor_input(lastDonation="2024-01-15"))

    updated = await service.update_donor(
        donor.id, DonorUpdate(last_donation=date(2025, 11, 30))
    )
    assert updated.next_available_date == date(2026, 3, 2)

    cleared = await service.update_donor(donor.id, DonorUpdate(last_donation=None))
    assert cleared.last_donation is None
    assert cleared.next_available_date is None


async def test_update_leaves_unsupplied_fields(db_session):
    service = DonorService(db_session)
    donor = await service.create_donor(donor_input(lastDonation="2024-01-15"))

    updated = await service.update_donor(donor.id, DonorUpdate(semester="6th"))

    assert updated.semester == "6th"
    assert updated.last_donation == date(2024, 1, 15)
    assert updated.next_available_date == date(2024, 4, 15)


async def test_update_allows_keeping_own_contact_number(db_session):
    service = DonorService(db_session)
    donor = await service.create_donor(donor_input())

    updated = await service.update_donor(
        donor.id, DonorUpdate(contact_number=donor.contact_number, name="Renamed")
    )
    assert updated.name == "Renamed"


async def test_update_rejects_contact_number_of_another_donor(db_session):
    service = DonorService(db_session)
    first = await service.create_donor(donor_input())
    second = await service.create_donor(donor_input())

    with pytest.raises(DonorValidationError) as exc:
        await service.update_donor(
            second.id, DonorUpdate(contact_number=first.contact_number)
        )
    assert exc.value.message == "Contact number already registered"


async def test_list_donors_search_and_sort(db_session):
    service = DonorService(db_session)
    await service.create_donor(donor_input(name="Zainab", city="lahore", bloodGroup="A+"))
    await service.create_donor(donor_input(name="ahmed", city="Karachi", bloodGroup="B+"))
    await service.create_donor(donor_input(name="Bushra", city="karachi city", bloodGroup="A-"))

    by_name = await service.list_donors(sort_by=DonorSortField.name)
    assert [d.name for d in by_name] == ["ahmed", "Bushra", "Zainab"]

    descending = await service.list_donors(
        sort_by=DonorSortField.name, sort_order=SortOrder.DESC
    )
    assert [d.name for d in descending] == ["Zainab", "Bushra", "ahmed"]

    in_karachi = await service.list_donors(search="KARACHI", filter_by=DonorFilterField.city)
    assert {d.name for d in in_karachi} == {"ahmed", "Bushra"}

    a_groups = await service.list_donors(search="a", filter_by=DonorFilterField.blood_group)
    assert {d.blood_group for d in a_groups} == {"A+", "A-"}


async def test_list_donors_search_treats_wildcards_literally(db_session):
    service = DonorService(db_session)
    await service.create_donor(donor_input(name="Sana"))

    assert await service.list_donors(search="%") == []


async def test_delete_donor(db_session):
    service = DonorService(db_session)
    donor = await service.create_donor(donor_input())

    await service.delete_donor(donor.id)

    assert await service.get_donor(donor.id) is None


async def test_stats(db_session):
    today = date.today()
    service = DonorService(db_session)
    await service.create_donor(donor_input(city="lahore", bloodGroup="O+"))
    await service.create_donor(
        donor_input(
            city="Lahore",
            bloodGroup="O+",
            lastDonation=(today - timedelta(days=5)).isoformat(),
        )
    )
    await service.create_donor(
        donor_input(city="multan", bloodGroup="B-", lastDonation="2020-01-01")
    )

    stats = await DonorStatsService(db_session).get_stats(today=today)

    assert stats.total_donors == 3
    assert stats.recent_donations == 1
    assert stats.eligible_donors == 2
    assert stats.blood_group_count == {"B-": 1, "O+": 2}
    assert stats.city_count == {"Lahore": 2, "Multan": 1}


def test_model_keeps_next_available_date_in_step():
    donor = Donor(name="x", last_donation=date(2024, 1, 31))
    assert donor.next_available_date == date(2024, 5, 1)

    donor.last_donation = date(2024, 2, 10)
    assert donor.next_available_date == date(2024, 5, 10)

    donor.last_donation = None
    assert donor.next_available_date is None


async def test_donors_to_csv(db_session):
    service = DonorService(db_session)
    await service.create_donor(donor_input(name="Hamza", lastDonation="2024-01-31"))
    await service.create_donor(donor_input(name="Iqra"))

    lines = donors_to_csv(await service.list_donors(sort_by=DonorSortField.name)).splitlines()

    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1].startswith("Hamza,")
    assert lines[1].endswith(",2024-01-31,2024-05-01")
    assert lines[2].endswith(",Never,N/A")


def test_donor_is_eligible():
    today = date(2024, 6, 15)
    assert Donor(last_donation=None).is_eligible(today)
    assert Donor(last_donation=date(2024, 3, 15)).is_eligible(today)
    assert not Donor(last_donation=date(2024, 3, 16)).is_eligible(today)


async def test_eligibility_filter_matches_in_python_and_sql(db_session):
    today = date(2024, 6, 15)
    service = DonorService(db_session)
    await service.create_donor(donor_input(name="Never Gave"))
    await service.create_donor(donor_input(name="Due Today", lastDonation="2024-03-15"))
    await service.create_donor(donor_input(name="Too Soon", lastDonation="2024-03-16"))

    result = await db_session.execute(select(Donor.name).where(Donor.is_eligible(today)))

    assert set(result.scalars().all()) == {"Never Gave", "Due Today"}
    donors = await service.list_donors()
    assert {d.name for d in donors if d.is_eligible(today)} == {"Never Gave", "Due Today"}


def test_directly_built_update_cannot_blank_a_required_field():
    with pytest.raises(ValidationError):
        DonorUpdate(name="", city="lAHORE")

"""
Tests unitarios para PageTransformer.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from opsync.application.services.page_transformer import (
    ClientNameResolver,
    PageTransformer,
    build_overflow,
    parse_page,
    resolve_is_late,
    task_duration,
)
from opsync.domain.entities.properties import PropertyKind, PropertyValue
from opsync.infrastructure.external.work_tracker.property_catalog import PROJECT_PROPERTIES
from opsync.shared.exceptions.sync import PageNotFoundError, ValidationError

from page_factory import (
    client_page,
    date,
    formula,
    no_sleep,
    number,
    page,
    people,
    project_page,
    relation,
    rich_text,
    select,
    team_member_page,
    title,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestParsePage:

    def test_requires_id(self):
        with pytest.raises(ValidationError):
            parse_page({"object": "page", "properties": {}})

    def test_reads_parent_and_archive_flags(self):
        parsed = parse_page({"id": "p1", "parent": {"database_id": "db"}, "in_trash": True})
        assert parsed.parent_id == "db"
        assert parsed.archived is True


class TestProjectCard:

    @pytest.fixture
    def client_names(self):
        store = AsyncMock()
        store.get_name = AsyncMock(return_value="Acme")
        return ClientNameResolver(store=store)

    @pytest.fixture
    def transformer(self, client_names):
        return PageTransformer(client_names=client_names, sleep=no_sleep)

    @pytest.mark.asyncio
    async def test_well_known_fields(self, transformer):
        raw = project_page(extra={
            "Push Back Count": number(2, prop_id="VmGU"),
            "Dev Due Date": date("2024-03-10", prop_id="pD%7BQ"),
            "Time Doctor Project ID": rich_text("td-42", prop_id="fTcG"),
        })

        card = await transformer.to_project_card(parse_page(raw))

        assert card.external_id == "card-1"
        assert card.name == "Landing page"
        assert card.status == "In Progress"
        assert card.developer_ids == ["dev-1"]
        assert card.primary_developer_id == "dev-1"
        assert card.client_id == "client-1"
        assert card.client_name == "Acme"
        assert card.pushback_count == 2
        assert card.dev_due_date == _utc(2024, 3, 10)
        assert card.time_tracker_project_id == "td-42"
        assert card.source_created_at == _utc(2024, 3, 1, 10)
        assert card.property_key_map["Status"] == "status"

    @pytest.mark.asyncio
    async def test_identifier_lookup_survives_rename(self, transformer):
        raw = project_page(extra={"Renamed Pushbacks": number(5, prop_id="VmGU")})
        # La propiedad llega bajo su id y con otro nombre visible
        raw["properties"]["VmGU"] = raw["properties"].pop("Renamed Pushbacks")

        card = await transformer.to_project_card(parse_page(raw))

        assert card.pushback_count == 5
        assert "renamed_pushbacks" not in card.overflow

    @pytest.mark.asyncio
    async def test_overflow_collects_unknown_properties(self, transformer):
        raw = project_page(extra={
            "Figma Link": {"id": "fg", "type": "url", "url": "https://figma/x"},
            "Priority": select("High", prop_id="pr"),
            "Created by": {"id": "cb", "type": "created_by", "created_by": {"id": "u"}},
        })

        card = await transformer.to_project_card(parse_page(raw))

        assert card.overflow["figma_link"] == PropertyValue.text("https://figma/x")
        assert card.overflow["priority"] == PropertyValue.select("High")
        assert "created_by" not in card.overflow
        assert card.property_key_map["Figma Link"] == "figma_link"

    @pytest.mark.asyncio
    async def test_qi_entries_relation_is_kept(self, transformer):
        raw = project_page(extra={
            "All QI Time Tracker Entries": relation("qi-1", "qi-2", prop_id="BnWp"),
        })

        card = await transformer.to_project_card(parse_page(raw))

        assert card.qi_entry_ids == ["qi-1", "qi-2"]
        assert "all_qi_time_tracker_entries" not in card.overflow

    @pytest.mark.asyncio
    async def test_overflow_never_overwrites_well_known_field(self, transformer):
        raw = project_page(extra={"status ": select("Colision", prop_id="otro")})

        card = await transformer.to_project_card(parse_page(raw))

        assert card.status == "In Progress"
        assert "status" not in card.overflow

    @pytest.mark.asyncio
    async def test_completion_date_priority(self, transformer):
        raw = project_page(extra={
            "Done date": date("2024-04-05", prop_id="PEKf"),
            "Deployment date": date("2024-04-07", prop_id="LTLM"),
        })
        card = await transformer.to_project_card(parse_page(raw))
        assert card.completion_date == _utc(2024, 4, 5)

        raw["properties"]["Ready for Client Date"] = date("2024-04-02", prop_id="W__Q")
        card = await transformer.to_project_card(parse_page(raw))
        assert card.completion_date == _utc(2024, 4, 2)

    @pytest.mark.asyncio
    async def test_configurable_completion_priority(self, client_names):
        transformer = PageTransformer(
            client_names=client_names, completion_priority=["deployment_date", "done_date"]
        )
        raw = project_page(extra={
            "Done date": date("2024-04-05", prop_id="PEKf"),
            "Deployment date": date("2024-04-07", prop_id="LTLM"),
        })
        card = await transformer.to_project_card(parse_page(raw))
        assert card.completion_date == _utc(2024, 4, 7)

    @pytest.mark.asyncio
    async def test_deadline_prefers_original_due_start(self, transformer):
        raw = project_page(extra={"Original Due Date": date("2024-04-01", "2024-04-03", prop_id="tkxZ")})
        card = await transformer.to_project_card(parse_page(raw))
        assert card.deadline == _utc(2024, 4, 1)
        assert card.original_due_end == _utc(2024, 4, 3)

    @pytest.mark.asyncio
    async def test_days_late_null_formula_is_zero(self, transformer):
        raw = project_page(extra={"Days Late": formula("number", None, prop_id="_c%7BP")})
        card = await transformer.to_project_card(parse_page(raw))
        assert card.days_late == 0
        assert card.is_late is False

    @pytest.mark.asyncio
    async def test_days_late_absent_stays_none(self, transformer):
        card = await transformer.to_project_card(parse_page(project_page()))
        assert card.days_late is None

    @pytest.mark.asyncio
    async def test_late_label_text(self, transformer):
        raw = project_page(extra={
            "Late?": formula("string", "🚨 LATE", prop_id="vHpl"),
            "Days Late": formula("number", 3, prop_id="_c%7BP"),
        })
        card = await transformer.to_project_card(parse_page(raw))
        assert card.late_label == "🚨 LATE"
        assert card.days_late == 3
        assert card.is_late is True

    @pytest.mark.asyncio
    async def test_malformed_date_raises_validation_error(self, transformer):
        raw = project_page(extra={"Done date": date("no-es-fecha", prop_id="PEKf")})
        with pytest.raises(ValidationError):
            await transformer.to_project_card(parse_page(raw))

    @pytest.mark.asyncio
    async def test_client_name_cached_per_pass(self, transformer, client_names):
        await transformer.to_project_card(parse_page(project_page("c1")))
        await transformer.to_project_card(parse_page(project_page("c2")))
        assert client_names._store.get_name.await_count == 1
        assert client_names.store_hits == 1

    @pytest.mark.asyncio
    async def test_design_hours_sum_task_durations(self):
        source = AsyncMock()
        source.retrieve_page = AsyncMock(side_effect=[
            page("t1", {"Duration": number(1.5, prop_id="_DxC")}),
            PageNotFoundError("t2"),
            page("t3", {"Hours spent": formula("number", 2.0, prop_id="hs")}),
        ])
        transformer = PageTransformer(
            source=source, client_names=ClientNameResolver(), sleep=no_sleep
        )
        raw = project_page(project_type="Design", client_id=None, extra={
            "Tasks": relation("t1", "t2", "t3", prop_id="Jxmx"),
        })

        card = await transformer.to_project_card(parse_page(raw))

        assert card.projected_design_hours == 3.5
        assert source.retrieve_page.await_count == 3

    @pytest.mark.asyncio
    async def test_non_design_projects_skip_task_lookup(self):
        source = AsyncMock()
        transformer = PageTransformer(source=source, client_names=ClientNameResolver(), sleep=no_sleep)
        raw = project_page(client_id=None, extra={"Tasks": relation("t1", prop_id="Jxmx")})

        card = await transformer.to_project_card(parse_page(raw))

        assert card.projected_design_hours is None
        source.retrieve_page.assert_not_called()


class TestClientNameResolver:

    @pytest.mark.asyncio
    async def test_live_fetch_only_on_store_miss(self):
        store = AsyncMock()
        store.get_name = AsyncMock(return_value=None)
        source = AsyncMock()
        source.retrieve_page = AsyncMock(return_value=client_page("client-9", "Globex"))
        resolver = ClientNameResolver(store=store, source=source)

        assert await resolver.resolve("client-9") == "Globex"
        assert await resolver.resolve("client-9") == "Globex"
        assert resolver.live_fetches == 1

    @pytest.mark.asyncio
    async def test_live_fetch_failure_yields_none(self):
        source = AsyncMock()
        source.retrieve_page = AsyncMock(side_effect=PageNotFoundError("client-x"))
        resolver = ClientNameResolver(source=source)
        assert await resolver.resolve("client-x") is None


class TestLateness:

    @pytest.mark.parametrize("value,days,expected", [
        (PropertyValue.boolean(True), None, True),
        (PropertyValue.boolean(False), 5, False),
        (PropertyValue.text("Yes"), None, True),
        (PropertyValue.text("true"), None, True),
        (PropertyValue.text("⌚️ On Time"), None, False),
        (PropertyValue.text("LATE by 2"), None, True),
        (None, 2, True),
        (None, 0, False),
        (None, None, False),
    ])
    def test_resolve_is_late(self, value, days, expected):
        assert resolve_is_late(value, days) is expected


class TestOtherEntities:

    @pytest.fixture
    def transformer(self):
        return PageTransformer(client_names=ClientNameResolver())

    def test_team_member(self, transformer):
        raw = team_member_page(
            "tm-1", "Ana", personal_email="ana@personal.dev", salary=3200, notion_user="user-7"
        )
        raw["properties"]["Position"] = rich_text("QA Lead", prop_id="l%40D%3C")

        member = transformer.to_team_member(parse_page(raw))

        assert member.work_tracker_user_id == "user-7"
        assert member.email == "ana@personal.dev"
        assert member.is_active is True
        assert member.position == "QA Lead"
        assert member.salary == 3200
        assert "notion_user" not in member.overflow

    def test_team_member_falls_back_to_creator(self, transformer):
        raw = team_member_page("tm-2", "Luis", company_email="luis@co.dev", employment_status="Inactive")
        member = transformer.to_team_member(parse_page(raw))
        assert member.work_tracker_user_id == "creator-1"
        assert member.email == "luis@co.dev"
        assert member.is_active is False

    @pytest.mark.parametrize("client_type,retired", [
        ("Retired", True),
        ("🔴 retired client", True),
        ("Active", False),
        (None, False),
    ])
    def test_client_retired_flag(self, transformer, client_type, retired):
        client = transformer.to_client(parse_page(client_page("c1", "Acme", client_type)))
        assert client.name == "Acme"
        assert client.is_retired is retired

    def test_qi_entry(self, transformer):
        raw = page("qi-1", {
            "Project Name": title("Landing"),
            "Quality Inspector": rich_text("Maria", prop_id="~syV"),
            "Date": date("2024-02-01", prop_id="SM~y"),
            "Number Of Hours": number(1.25, prop_id="%40arI"),
        })
        entry = transformer.to_qi_entry(parse_page(raw))
        assert entry.project_name == "Landing"
        assert entry.quality_inspector == "Maria"
        assert entry.hours == 1.25
        assert entry.entry_date == _utc(2024, 2, 1)


class TestOverflowHelpers:

    def test_duplicate_normalized_keys_keep_first(self):
        props = {
            "Priority": select("High", prop_id="a"),
            "priority!": select("Low", prop_id="b"),
        }
        key_map = {}
        overflow = build_overflow(props, PROJECT_PROPERTIES, set(), key_map)
        assert overflow["priority"].value == "High"
        assert key_map == {"Priority": "priority"}

    def test_task_duration_fallback_by_name(self):
        props = {"Estimated hours": number(4, prop_id="eh")}
        assert task_duration(props) == 4

    def test_task_duration_missing(self):
        assert task_duration({"Name": title("t")}) is None

"""Unit tests for the BGG XML parser."""

import pytest

from meeple.bgg.parser import BggErrorResponse, BggParseError, parse_collection, parse_things

THINGS_XML = """
<?xml version="1.0" encoding="utf-8"?>
<items termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="224517">
    <thumbnail>https://example.com/brass-thumb.jpg</thumbnail>
    <image>https://example.com/brass.jpg</image>
    <name type="primary" sortindex="1" value="Brass: Birmingham" />
    <name type="alternate" sortindex="1" value="Brass: Birmingham (alt)" />
    <description>Build networks &amp;#10;across Birmingham &amp;amp; beyond</description>
    <yearpublished value="2018" />
    <minplayers value="2" />
    <maxplayers value="4" />
    <playingtime value="120" />
    <minplaytime value="60" />
    <maxplaytime value="120" />
    <minage value="14" />
    <link type="boardgamecategory" id="1021" value="Economic" />
    <link type="boardgamemechanic" id="2040" value="Hand Management" />
    <link type="boardgamemechanic" id="2081" value="Network and Route Building" />
    <statistics page="1">
      <ratings>
        <usersrated value="48000" />
        <average value="8.58" />
        <bayesaverage value="8.40" />
        <ranks>
          <rank type="family" id="5497" name="strategygames" value="1" />
          <rank type="subtype" id="1" name="boardgame" value="1" />
        </ranks>
        <owned value="70000" />
        <averageweight value="3.87" />
      </ratings>
    </statistics>
  </item>
  <item type="boardgame" id="123456">
    <name type="primary" sortindex="1" value="Simple Game" />
    <minplayers value="2" />
    <statistics page="1">
      <ratings>
        <average value="6.50" />
        <ranks>
          <rank type="subtype" id="1" name="boardgame" value="Not Ranked" />
        </ranks>
      </ratings>
    </statistics>
  </item>
</items>
"""

COLLECTION_XML = """
<?xml version="1.0" encoding="utf-8" standalone="yes"?>
<items totalitems="2" termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item objecttype="thing" objectid="224517" subtype="boardgame" collid="1">
    <name sortindex="1">Brass: Birmingham</name>
    <yearpublished>2018</yearpublished>
  </item>
  <item objecttype="thing" objectid="13" subtype="boardgame" collid="2">
    <name sortindex="1">CATAN</name>
  </item>
</items>
"""

ERROR_XML = """
<?xml version="1.0" encoding="utf-8" standalone="yes"?>
<errors>
  <error>
    <message>Invalid username specified</message>
  </error>
</errors>
"""


class TestParseThings:
    """Parsing of /thing responses."""

    def test_items_in_document_order(self):
        things = parse_things(THINGS_XML)

        assert [t.id for t in things] == ["224517", "123456"]

    def test_scalar_fields(self):
        brass = parse_things(THINGS_XML)[0]

        assert brass.type == "boardgame"
        assert brass.primary_name == "Brass: Birmingham"
        assert brass.yearpublished == "2018"
        assert (brass.minplayers, brass.maxplayers) == ("2", "4")
        assert (brass.minplaytime, brass.maxplaytime, brass.playingtime) == ("60", "120", "120")
        assert brass.minage == "14"
        assert brass.thumbnail == "https://example.com/brass-thumb.jpg"

    def test_statistics(self):
        brass = parse_things(THINGS_XML)[0]

        assert brass.average == "8.58"
        assert brass.bayesaverage == "8.40"
        assert brass.usersrated == "48000"
        assert brass.owned == "70000"
        assert brass.averageweight == "3.87"
        assert brass.rank == "1"

    def test_description_entities_are_unescaped(self):
        brass = parse_things(THINGS_XML)[0]

        assert brass.description == "Build networks \nacross Birmingham & beyond"

    def test_only_mechanic_links_are_kept(self):
        brass = parse_things(THINGS_XML)[0]

        assert brass.mechanics == ["Hand Management", "Network and Route Building"]

    def test_missing_fields_stay_none(self):
        simple = parse_things(THINGS_XML)[1]

        assert simple.maxplayers is None
        assert simple.description is None
        assert simple.averageweight is None
        assert simple.rank == "Not Ranked"
        assert simple.mechanics == []

    def test_empty_items(self):
        assert parse_things('<items termsofuse="x"></items>') == []

    def test_malformed_xml(self):
        with pytest.raises(BggParseError):
            parse_things("<items><item")

    def test_error_document(self):
        with pytest.raises(BggErrorResponse) as exc:
            parse_things(ERROR_XML)
        assert exc.value.message == "Invalid username specified"


class TestParseCollection:
    """Parsing of /collection responses."""

    def test_items(self):
        items = parse_collection(COLLECTION_XML)

        assert [i.id for i in items] == ["224517", "13"]
        assert items[0].primary_name == "Brass: Birmingham"
        assert items[0].yearpublished == "2018"
        assert items[0].subtype == "boardgame"
        assert items[1].yearpublished is None

    def test_error_document(self):
        with pytest.raises(BggErrorResponse):
            parse_collection(ERROR_XML)

    def test_item_without_objectid(self):
        with pytest.raises(BggParseError):
            parse_collection('<items><item objecttype="thing"><name>X</name></item></items>')

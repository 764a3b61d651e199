"""
Tests for cli.py using click's CliRunner.
"""
import pytest
from click.testing import CliRunner

from cli import cli
from container.codec import open_deck


@pytest.fixture()
def runner():
    return CliRunner()


@pytest.fixture()
def words(tmp_path):
    path = tmp_path / 'words.txt'
    path.write_text("chien - dog\nchat\tcat\tLe chat dort.\n\nnot a card\noiseau | bird\n", encoding='utf-8')
    return path


@pytest.fixture()
def built(runner, words, tmp_path):
    dest = tmp_path / 'words.mflash'
    result = runner.invoke(cli, ['build', str(words), str(dest), '--tag', 'fr', '--tag', 'animals',
                                 '--lang-front', 'fr', '--lang-back', 'en'])
    assert result.exit_code == 0, result.output
    return dest


class TestBuild:
    def test_build_from_text(self, built):
        with open_deck(built) as opened:
            deck = opened.deck()
            assert deck.name == 'words'
            assert deck.tags == ['fr', 'animals']
            cards = opened.store.cards_in_order(deck.id)
            assert [c.term for c in cards] == ['chien', 'chat', 'oiseau']
            assert cards[1].example == 'Le chat dort.'

    def test_build_from_csv_with_media(self, runner, tmp_path):
        src = tmp_path / 'capitals.csv'
        src.write_text('France,Paris\nItaly,Rome\n', encoding='utf-8')
        cover = tmp_path / 'cover.png'
        cover.write_bytes(b'png bytes')
        dest = tmp_path / 'capitals.mflash'

        result = runner.invoke(cli, ['build', str(src), str(dest), '--name', 'Capitals', '--media', str(cover)])
        assert result.exit_code == 0, result.output
        assert '2 cards' in result.output

        with open_deck(dest) as opened:
            assert opened.manifest.has_deck_media
            media = opened.store.list_media()
            assert media[0].deck_wide
            assert media[0].kind == 'image'
            assert opened.read_media('cover.png') == b'png bytes'

    def test_build_with_no_cards_fails(self, runner, tmp_path):
        src = tmp_path / 'empty.txt'
        src.write_text('nothing useful\n', encoding='utf-8')
        result = runner.invoke(cli, ['build', str(src), str(tmp_path / 'x.mflash')])
        assert result.exit_code != 0
        assert 'No cards' in result.output
        assert not (tmp_path / 'x.mflash').exists()

    def test_build_from_markdown(self, runner, tmp_path):
        src = tmp_path / 'biology.md'
        src.write_text("# Biology\n\n- Cell: basic unit of life\n- Gene: unit of heredity\n", encoding='utf-8')
        dest = tmp_path / 'biology.mflash'
        result = runner.invoke(cli, ['build', str(src), str(dest)])
        assert result.exit_code == 0, result.output

        with open_deck(dest) as opened:
            deck = opened.deck()
            assert deck.name == 'biology'
            assert [c.term for c in opened.store.cards_in_order(deck.id)] == ['Cell', 'Gene']

    def test_build_from_deck_json_keeps_its_name(self, runner, tmp_path):
        src = tmp_path / 'export.json'
        src.write_text('{"name": "Pets", "description": "Animals at home", '
                       '"cards": [{"term": "Dog", "definition": "mammal"}]}', encoding='utf-8')
        dest = tmp_path / 'pets.mflash'
        result = runner.invoke(cli, ['build', str(src), str(dest)])
        assert result.exit_code == 0, result.output

        with open_deck(dest) as opened:
            assert opened.manifest.name == 'Pets'
            assert opened.deck().description == 'Animals at home'

    def test_build_from_xml_fails(self, runner, tmp_path):
        src = tmp_path / 'deck.xml'
        src.write_text('<deck/>', encoding='utf-8')
        result = runner.invoke(cli, ['build', str(src), str(tmp_path / 'x.mflash')])
        assert result.exit_code != 0
        assert 'SourceError' in result.output


class TestInspect:
    def test_info(self, runner, built):
        result = runner.invoke(cli, ['info', str(built)])
        assert result.exit_code == 0, result.output
        assert 'words' in result.output
        assert 'cards: 3' in result.output
        assert 'new: 3' in result.output

    def test_cards(self, runner, built):
        result = runner.invoke(cli, ['cards', str(built)])
        assert result.exit_code == 0
        assert result.output.splitlines()[0] == '1\tchien\tdog'

    def test_due_lists_new_cards(self, runner, built):
        result = runner.invoke(cli, ['due', str(built)])
        assert result.exit_code == 0
        assert len(result.output.splitlines()) == 3

    def test_nothing_due_in_the_past(self, runner, built):
        result = runner.invoke(cli, ['due', str(built), '--as-of', '2000-01-01T00:00:00Z'])
        assert 'Nothing due.' in result.output

    def test_info_on_bad_file(self, runner, tmp_path):
        bad = tmp_path / 'bad.mflash'
        bad.write_text('nope')
        result = runner.invoke(cli, ['info', str(bad)])
        assert result.exit_code != 0
        assert 'NotAContainer' in result.output


class TestReview:
    def test_review_saves_back(self, runner, built):
        result = runner.invoke(cli, ['review', str(built), '2', 'correct'])
        assert result.exit_code == 0, result.output
        assert 'next review in 1d' in result.output

        with open_deck(built) as opened:
            state = opened.store.get_review_state(2)
            assert state.reps == 1
            assert state.interval_days == 1

    def test_review_bad_grade(self, runner, built):
        result = runner.invoke(cli, ['review', str(built), '2', 'sort-of'])
        assert result.exit_code != 0
        assert 'unknown grade' in result.output

    def test_review_unknown_card(self, runner, built):
        result = runner.invoke(cli, ['review', str(built), '99', 'correct'])
        assert result.exit_code != 0
        assert 'NotFound' in result.output

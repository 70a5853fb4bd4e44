"""End-to-end: build a template workbook, generate, verify every output CSV."""
from __future__ import annotations

import csv
from pathlib import Path

import openpyxl
import pytest

from tagproc_gen.errors import GenerationFailedError
from tagproc_gen.generator import generate
from tagproc_gen.main import main
from tagproc_gen.models import QualityWrapMode

from conftest import BREAKER_POINTS


def _read(path: Path) -> list[list[str]]:
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def _lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()


class TestGenerateTwoDevices:

    @pytest.fixture
    def result(self, workbook_factory, tmp_path):
        return generate(workbook_factory(), output_dir=tmp_path / "out")

    def test_written_files(self, result, tmp_path):
        out = tmp_path / "out"
        assert result.written == [
            out / "Substation_TagProcessor.csv",
            out / "Substation_ScadaTags_StatusBinary.csv",
            out / "Substation_ScadaTags_ControlBinary.csv",
            out / "Substation_RtacServerTags_DNPBI.csv",
            out / "Substation_RtacServerTags_DNPC.csv",
        ]
        assert all(p.exists() for p in result.written)

    def test_tag_processor_map(self, result, tmp_path):
        rows = _read(tmp_path / "out" / "Substation_TagProcessor.csv")
        assert rows == [
            ["Tags.SCADA1_BRK", "DNPBI", "IED1.Ind01.stVal", "SPS", "", ""],
            ["IED1.BRK_CLOSE", "SPC_ON", "Tags.SCADA1_BRK_C.operLatchOn", "DNPC[0]", "", ""],
            ["IED1.BRK_OPEN", "SPC_OFF", "Tags.SCADA1_BRK_C.operLatchOff", "DNPC[1]", "", ""],
            ["Tags.SCADA2_BRK", "DNPBI", "IED2.Ind01.stVal", "SPS", "", ""],
            ["IED2.BRK_CLOSE", "SPC_ON", "Tags.SCADA2_BRK_C.operLatchOn", "DNPC[0]", "", ""],
            ["IED2.BRK_OPEN", "SPC_OFF", "Tags.SCADA2_BRK_C.operLatchOff", "DNPC[1]", "", ""],
        ]
        assert result.map_entries == 6
        assert result.wrap_mode == QualityWrapMode.NONE

    def test_scada_status_tags(self, result, tmp_path):
        assert _lines(tmp_path / "out" / "Substation_ScadaTags_StatusBinary.csv") == [
            "Name,Address,Key,Record,Normal",
            '"SCADA1 BRK",1,"0001",1,0',
            '"SCADA2 BRK",51,"0051",2,0',
        ]

    def test_scada_control_keys_follow_status_point(self, result, tmp_path):
        assert _lines(tmp_path / "out" / "Substation_ScadaTags_ControlBinary.csv") == [
            "Name,Address,Key,Record",
            '"SCADA1 BRK",1,"0001",1',
            '"SCADA2 BRK",11,"0051",2',
        ]

    def test_rtac_server_tags(self, result, tmp_path):
        assert _read(tmp_path / "out" / "Substation_RtacServerTags_DNPBI.csv") == [
            ["SCADA_Server.BI_00001", "1", "SCADA1_BRK"],
            ["SCADA_Server.BI_00051", "51", "SCADA2_BRK"],
        ]
        assert _read(tmp_path / "out" / "Substation_RtacServerTags_DNPC.csv") == [
            ["SCADA_Server.BO_00001.operLatchOn", "1", "SCADA1_BRK_C"],
            ["SCADA_Server.BO_00001.operLatchOff", "1", "SCADA1_BRK_C"],
            ["SCADA_Server.BO_00011.operLatchOn", "11", "SCADA2_BRK_C"],
            ["SCADA_Server.BO_00011.operLatchOff", "11", "SCADA2_BRK_C"],
        ]

    def test_longest_tag(self, result):
        assert result.longest_tag == "SCADA1 BRK"
        assert result.longest_tag_length == 10

    def test_output_defaults_to_workbook_folder(self, workbook_factory, tmp_path):
        result = generate(workbook_factory("Yard.xlsx"))
        assert result.written[0] == tmp_path / "Yard_TagProcessor.csv"


class TestQualityWrapping:

    def test_wrap_mode_from_workbook(self, workbook_factory, tmp_path):
        result = generate(workbook_factory(wrap_mode=1), output_dir=tmp_path)
        rows = _read(tmp_path / "Substation_TagProcessor.csv")
        assert result.wrap_mode == QualityWrapMode.GROUP_ALL_BY_DEVICE
        # One five line block per device, then the four unwrapped controls
        assert len(rows) == 14
        assert rows[0][2] == "IF (IED1.Ind01.q.validity <> good) THEN"
        assert rows[1] == ["Tags.SCADA1_BRK", "DNPBI", "FALSE", "", "IED1.Ind01.t", "IED1.Ind01.q"]
        assert rows[2][2] == "ELSE"
        assert rows[3][2] == "IED1.Ind01.stVal"
        assert rows[4][2] == "END_IF"
        assert rows[5][2] == "IF (IED2.Ind01.q.validity <> good) THEN"
        assert [r[0] for r in rows[10:]] == ["IED1.BRK_CLOSE", "IED1.BRK_OPEN", "IED2.BRK_CLOSE", "IED2.BRK_OPEN"]

    def test_override_wins(self, workbook_factory, tmp_path):
        result = generate(workbook_factory(wrap_mode=1), output_dir=tmp_path, wrap_mode=QualityWrapMode.NONE)
        assert result.wrap_mode == QualityWrapMode.NONE
        assert len(_read(tmp_path / "Substation_TagProcessor.csv")) == 6

    def test_nominal_follows_scada_normal_state(self, workbook_factory, tmp_path):
        points = [BREAKER_POINTS[0][:7] + ("[5,1]",)] + BREAKER_POINTS[1:]
        generate(workbook_factory(points=points, wrap_mode=3), output_dir=tmp_path)
        assert _read(tmp_path / "Substation_TagProcessor.csv")[1][2] == "TRUE"


class TestPointSelection:

    def test_filtered_point(self, workbook_factory, tmp_path):
        points = BREAKER_POINTS + [(True, "IED2", 2, "{IED}.Ind02.stVal", "SPS", "", "ALARM", "[5,0]")]
        generate(workbook_factory(points=points), output_dir=tmp_path)
        names = [r[0] for r in _read(tmp_path / "Substation_RtacServerTags_DNPBI.csv")]
        assert names == ["SCADA_Server.BI_00001", "SCADA_Server.BI_00051", "SCADA_Server.BI_00052"]

    def test_hidden_point_has_no_output(self, workbook_factory, tmp_path):
        points = BREAKER_POINTS + [(True, "ALL", 2, "{IED}.Ind02.stVal", "SPS", "", "--", "[5,0]")]
        result = generate(workbook_factory(points=points), output_dir=tmp_path)
        assert result.map_entries == 6
        assert len(_read(tmp_path / "Substation_RtacServerTags_DNPBI.csv")) == 2
        assert len(_lines(tmp_path / "Substation_ScadaTags_StatusBinary.csv")) == 3

    def test_hidden_point_columns_still_checked(self, workbook_factory, tmp_path):
        points = BREAKER_POINTS + [(True, "ALL", 2, "{IED}.Ind02.stVal", "SPS", "[1,x]", "--", "[5,0]")]
        with pytest.raises(GenerationFailedError, match="RTAC column definitions") as exc_info:
            generate(workbook_factory(points=points), output_dir=tmp_path)
        assert exc_info.value.phase == "Generating tags for template TPL_Relay"

    def test_scada_address_offset(self, workbook_factory, tmp_path):
        generate(workbook_factory(scada_address_offset=1000), output_dir=tmp_path)
        lines = _lines(tmp_path / "Substation_ScadaTags_ControlBinary.csv")
        assert lines[2] == '"SCADA2 BRK",1011,"1051",2'
        rtac_rows = _read(tmp_path / "Substation_RtacServerTags_DNPBI.csv")
        assert rtac_rows[1][1] == "51"


class TestFailures:

    def test_missing_pointer(self, workbook_factory, tmp_path):
        path = workbook_factory(include_wrap_mode=False)
        with pytest.raises(GenerationFailedError, match="TPL_RTAC_TAG_PROC_WRAP_MODE") as exc_info:
            generate(path, output_dir=tmp_path)
        assert exc_info.value.phase == "Loading pointers"

    def test_invalid_wrap_mode(self, workbook_factory, tmp_path):
        with pytest.raises(GenerationFailedError, match="quality wrap mode") as exc_info:
            generate(workbook_factory(wrap_mode=9), output_dir=tmp_path)
        assert exc_info.value.phase == "Reading RTAC template"

    def test_quality_wrapped_control_type(self, workbook_factory, tmp_path):
        path = workbook_factory(wrap_mode=2)
        wb = openpyxl.load_workbook(path)
        wb["TPL_RTAC"]["F11"] = True
        wb.save(path)
        with pytest.raises(GenerationFailedError, match="SPC_ON") as exc_info:
            generate(path, output_dir=tmp_path)
        assert exc_info.value.phase == "Reading RTAC template"

    def test_not_a_workbook(self, tmp_path):
        path = tmp_path / "bad.xlsx"
        path.write_text("plain text", encoding="utf-8")
        with pytest.raises(GenerationFailedError, match="Unable to open workbook") as exc_info:
            generate(path, output_dir=tmp_path)
        assert exc_info.value.phase == "Opening workbook"

    def test_validation_failure_names_template(self, workbook_factory, tmp_path):
        points = BREAKER_POINTS + [(True, "ALL", 50, "{IED}.Ind50.stVal", "SPS", "", "LATE", "[5,0]")]
        with pytest.raises(GenerationFailedError) as exc_info:
            generate(workbook_factory(points=points), output_dir=tmp_path)
        assert exc_info.value.phase == "Validating template TPL_Relay"
        assert "Occurred while: Validating template TPL_Relay" in str(exc_info.value)

    def test_name_too_long(self, workbook_factory, tmp_path):
        devices = [("IED1", "A VERY LONG SUBSTATION NAME HERE"), ("IED2", "SCADA2")]
        with pytest.raises(GenerationFailedError, match="Tag name too long"):
            generate(workbook_factory(devices=devices), output_dir=tmp_path)


class TestCli:

    def test_success(self, workbook_factory, tmp_path, capsys):
        out = tmp_path / "cli_out"
        assert main([str(workbook_factory()), "-o", str(out)]) == 0
        captured = capsys.readouterr()
        assert 'Longest SCADA tag name: "SCADA1 BRK" (10 characters)' in captured.out
        assert (out / "Substation_TagProcessor.csv").exists()

    def test_wrap_mode_by_name(self, workbook_factory, tmp_path):
        assert main([str(workbook_factory()), "-o", str(tmp_path), "--wrap-mode", "wrap-individually"]) == 0
        assert len(_read(tmp_path / "Substation_TagProcessor.csv")) == 14

    def test_missing_workbook(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.xlsx")]) == 1
        assert "workbook not found" in capsys.readouterr().err

    def test_generation_failure(self, workbook_factory, tmp_path, capsys):
        assert main([str(workbook_factory(wrap_mode=9)), "-o", str(tmp_path)]) == 1
        assert "Occurred while: Reading RTAC template" in capsys.readouterr().err

    def test_unreadable_workbook(self, tmp_path, capsys):
        path = tmp_path / "bad.xlsx"
        path.write_text("plain text", encoding="utf-8")
        assert main([str(path), "-o", str(tmp_path)]) == 1
        assert "Occurred while: Opening workbook" in capsys.readouterr().err

    def test_invalid_wrap_mode_argument(self, workbook_factory):
        with pytest.raises(SystemExit):
            main([str(workbook_factory()), "--wrap-mode", "sometimes"])

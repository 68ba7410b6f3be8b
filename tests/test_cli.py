import json
import pathlib

import PIL.Image

import card_print_engine.cli as cli


#============================================
def write_inputs(tmp_path: pathlib.Path, card_design: dict) -> tuple[pathlib.Path, pathlib.Path]:
	template_path = tmp_path / "template.json"
	template_path.write_text(json.dumps(card_design), encoding="utf-8")
	records_path = tmp_path / "records.csv"
	records_path.write_text(
		"name,roll_number,class,school\nAsha Rao,12,7B,Hillside\nRavi Kumar,13,7B,Hillside\n",
		encoding="utf-8",
	)
	return template_path, records_path


#============================================
def test_batch_command(tmp_path: pathlib.Path, card_design: dict) -> None:
	"""
	Ensure the batch command writes a PDF and a manifest.
	"""
	template_path, records_path = write_inputs(tmp_path, card_design)
	output_path = tmp_path / "cards.pdf"
	manifest_path = tmp_path / "cards.json"
	code = cli.main(
		[
			"batch", str(template_path), str(records_path),
			"-o", str(output_path), "--manifest", str(manifest_path),
			"--mode", "production", "--width", "200", "--height", "125",
		]
	)
	assert code == 0
	assert output_path.read_bytes().startswith(b"%PDF")
	data = json.loads(manifest_path.read_text(encoding="utf-8"))
	assert data["rendered_cards"] == 2


#============================================
def test_render_command(tmp_path: pathlib.Path, card_design: dict) -> None:
	template_path, records_path = write_inputs(tmp_path, card_design)
	output_path = tmp_path / "card.png"
	code = cli.main(["render", str(template_path), "-r", str(records_path), "-i", "1", "-o", str(output_path)])
	assert code == 0
	assert output_path.read_bytes().startswith(b"\x89PNG")


#============================================
def test_failure_exit_code(tmp_path: pathlib.Path) -> None:
	template_path = tmp_path / "template.json"
	template_path.write_text(json.dumps({"nodes": []}), encoding="utf-8")
	code = cli.main(["render", str(template_path), "-o", str(tmp_path / "card.png")])
	assert code == 1


#============================================
def test_impose_command(tmp_path: pathlib.Path) -> None:
	"""
	Ensure existing card images can be imposed with a forced slot orientation.
	"""
	image_paths = []
	for index in range(2):
		path = tmp_path / f"card_{index}.png"
		image = PIL.Image.new("RGB", (160, 100), (0, 0, 200))
		image.save(path)
		image.close()
		image_paths.append(str(path))
	output_path = tmp_path / "imposed.pdf"
	code = cli.main(["impose", *image_paths, "-o", str(output_path), "--slot-orientation", "portrait"])
	assert code == 0
	assert output_path.read_bytes().startswith(b"%PDF")

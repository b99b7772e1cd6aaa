import logging
import os
from typing import NoReturn

import jinja2

from mailbox_e2e.models import Outcome, Report

logger = logging.getLogger(__name__)
here = os.path.dirname(os.path.abspath(__file__))


class ReportExporter:
    def __init__(
        self,
        template_dir: str = os.path.join(here, "templates"),
        root_template: str = "report.html",
    ):
        self.template_dir = template_dir
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(template_dir), autoescape=jinja2.select_autoescape(["html"])
        )
        self.template = self.env.get_template(root_template)

    def export_json(
        self, report: Report, dest_directory: str, dest_filename: str = "report.json", exclude_image_data: bool = False
    ) -> str:
        if report.num_failures > 0:
            report.outcome = Outcome.failure

        exclude = None
        if exclude_image_data:
            # for each result in report, for each png in result, ignore the 'base64' field.
            logger.info("Stripping base64 image data from report.json")
            exclude = {"results": {"__all__": {"pngs": {"__all__": {"base64"}}}}}
        filename = os.path.join(dest_directory, dest_filename)
        with open(filename, "w") as f:
            f.write(report.model_dump_json(indent=4, exclude=exclude))
        logger.info(f"Report JSON saved to {filename}")
        return filename

    def export_all(self, report: Report, dest_directory: str):
        # Images are written to disk, so their base64 is left out of the json;
        # the json keeps their metadata, including filename.
        self.export_json(report, dest_directory=dest_directory, exclude_image_data=True)
        self.export_images(report, dest_directory=dest_directory)
        self.export_html(report, dest_directory=dest_directory)

    def export_html(self, report: Report, dest_directory: str, dest_filename: str = "index.html") -> str:
        dest_filename = os.path.join(dest_directory, dest_filename)
        stream = self.template.stream(report=report, Outcome=Outcome)
        stream.dump(dest_filename)
        logger.info(f"Exported report HTML to {dest_filename}")
        return dest_filename

    @classmethod
    def export_images(cls, report: Report, dest_directory: str) -> NoReturn:
        for test in report.results:
            for image in filter(lambda i: i.base64, test.pngs):
                image.save(dest_directory)
                logger.info(f"Saved image {image.url}")

import xml.etree.ElementTree as ET

from runforge.executor.types import CommandResult, ProjectResult, ProjectStatus, RunResult


def render_junit(run: RunResult, *, suite_name: str = "runforge") -> str:
    summary = run.summary
    root = ET.Element(
        "testsuites",
        {
            "name": suite_name,
            "tests": str(summary.total_projects),
            "failures": str(summary.failed_projects),
            "errors": str(summary.error_projects),
            "skipped": str(summary.skipped_projects),
            "time": f"{run.total_duration_s:.3f}",
            "timestamp": run.start_time.isoformat(),
        },
    )

    for project in run.project_results:
        root.append(_testsuite(project))

    ET.indent(root)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


def _testsuite(project: ProjectResult) -> ET.Element:
    suite = ET.Element(
        "testsuite",
        {
            "name": project.name,
            "tests": str(len(project.command_results)),
            "failures": str(sum(1 for c in project.command_results if not c.is_success)),
            "errors": "1" if project.status is ProjectStatus.ERROR else "0",
            "skipped": "1" if project.status is ProjectStatus.SKIPPED else "0",
            "time": f"{project.duration_s:.3f}",
            "timestamp": project.start_time.isoformat(),
        },
    )

    if project.error_message and project.status is not ProjectStatus.PASSED:
        ET.SubElement(suite, "system-err").text = project.error_message

    for command in project.command_results:
        suite.append(_testcase(project.name, command))

    return suite


def _testcase(classname: str, command: CommandResult) -> ET.Element:
    case = ET.Element(
        "testcase",
        {"name": command.command, "classname": classname, "time": f"{command.duration_s:.3f}"},
    )

    if not command.is_success:
        failure = ET.SubElement(
            case,
            "failure",
            {
                "message": f"Command failed with exit code {command.exit_code}",
                "type": command.outcome.value,
            },
        )
        failure.text = (
            f"Command: {command.command}\nExit Code: {command.exit_code}\n"
            f"Output: {command.output}\nError: {command.error}"
        )

    if command.output:
        ET.SubElement(case, "system-out").text = command.output
    if command.error:
        ET.SubElement(case, "system-err").text = command.error

    return case

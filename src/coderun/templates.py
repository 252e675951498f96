"""Starter programs offered for each language.

Every template reads one line from stdin, so a fresh editor exercises the
needs_input/stdin round trip out of the box.
"""

from typing import Final

from coderun.models import Language

TEMPLATES: Final[dict[Language, str]] = {
    Language.PYTHON: """color = input("enter color: ")
print("Your favorite color is:", color)""",
    Language.JAVASCRIPT: """const readline = require('readline').createInterface({
  input: process.stdin,
  output: process.stdout
});
readline.question("enter color: ", color => {
  console.log("Your favorite color is:", color);
  readline.close();
  process.exit(0);
});""",
    Language.C: """#include <stdio.h>
int main() {
    char color[100];
    printf("enter color: ");
    scanf("%s", color);
    printf("Your favorite color is: %s", color);
    return 0;
}""",
    Language.CPP: """#include <iostream>
using namespace std;
int main() {
    string color;
    cout << "enter color: ";
    cin >> color;
    cout << "Your favorite color is: " << color;
    return 0;
}""",
    Language.JAVA: """import java.util.*;
public class Main {
    public static void main(String[] args) {
        Scanner sc = new Scanner(System.in);
        System.out.print("enter color: ");
        String color = sc.nextLine();
        System.out.println("Your favorite color is: " + color);
    }
}""",
    Language.GO: """package main

import (
    "bufio"
    "fmt"
    "os"
)

func main() {
    reader := bufio.NewReader(os.Stdin)
    fmt.Print("enter color: ")
    color, _ := reader.ReadString('\\n')
    fmt.Printf("Your favorite color is: %s", color)
}""",
    Language.RUBY: """print "enter color: "
STDOUT.flush
color = gets.chomp
puts "Your favorite color is: #{color}"
""",
}


def get_template(language: Language | str) -> str:
    """Starter code for a language ("" if none is defined)."""
    return TEMPLATES.get(Language(language), "")
